"""
API Dependencies for FastAPI Router Modules
Shared dependencies for authentication and sync service access
"""

import hmac
import logging
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from techsync.core.service import SyncService

# Initialize security scheme
security = HTTPBearer(auto_error=False)
logger = logging.getLogger(__name__)


class APIAuthenticator:
    """Centralized API authentication handler"""

    def __init__(self, api_key: str):
        if not api_key:
            raise ValueError("API key must not be empty")
        self.api_key = api_key

    def verify_api_key(self, credentials: Optional[HTTPAuthorizationCredentials] = None) -> bool:
        """Verify API key from authorization header"""
        if not credentials:
            return False
        return hmac.compare_digest(credentials.credentials.encode(), self.api_key.encode())

    def raise_unauthorized(self):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing API key",
            headers={"WWW-Authenticate": "Bearer"},
        )


# Set during app initialization
_authenticator: Optional[APIAuthenticator] = None
_sync_service: Optional[SyncService] = None


def init_api_dependencies(api_key: str, sync_service: SyncService):
    """Initialize API dependencies with configuration"""
    global _authenticator, _sync_service
    _authenticator = APIAuthenticator(api_key)
    _sync_service = sync_service


async def verify_api_key(credentials: HTTPAuthorizationCredentials = Depends(security)) -> bool:
    """FastAPI dependency for API key verification"""
    if not _authenticator:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="API authentication not initialized"
        )

    if not _authenticator.verify_api_key(credentials):
        logger.warning("Rejected request with invalid or missing API key")
        _authenticator.raise_unauthorized()

    return True


async def get_sync_service() -> SyncService:
    """FastAPI dependency to get the sync service"""
    if _sync_service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Sync service not initialized"
        )
    return _sync_service
