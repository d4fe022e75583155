"""
TechSync API Module
FastAPI routers, schemas and error handlers for the sync service
"""

from .sync import router as sync_router
from .error_handling import register_error_handlers

__all__ = [
    'sync_router',
    'register_error_handlers'
]
