"""
Integration adapters for TechSync
HTTP clients for the source and target datastores
"""

from techsync.integrations.postgrest import (
    PostgrestDatastore,
    PostgrestSyncTarget,
    HttpSyncTarget,
    build_source,
    build_target
)

__all__ = [
    'PostgrestDatastore',
    'PostgrestSyncTarget',
    'HttpSyncTarget',
    'build_source',
    'build_target'
]
