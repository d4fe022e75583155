"""
TechSync - queue-backed synchronization between two catalogue databases
"""

__version__ = "1.0.0"
