"""Token capability checks for FastAPI routes."""

import secrets
from typing import Callable

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from affiliate_ledger.logging_config import get_logger
from affiliate_ledger.settings import settings

logger = get_logger(__name__)

# Security scheme
security = HTTPBearer(auto_error=False)


class TokenCapability:
    """Dependency granting access to callers holding a configured bearer token.

    The expected token is read from settings on every call, so rotating it
    does not need a restart of the dependency graph.
    """

    def __init__(self, name: str, token_getter: Callable[[], str]):
        """Initialize capability.

        Args:
            name: Capability name, used as the default actor
            token_getter: Returns the token callers must present
        """
        self.name = name
        self.token_getter = token_getter

    def __call__(
        self,
        credentials: HTTPAuthorizationCredentials | None = Depends(security),
        x_actor: str | None = Header(default=None, alias="X-Actor"),
    ) -> str:
        """Check the bearer token.

        Returns:
            Actor name for audit notes (X-Actor header or the capability name)

        Raises:
            HTTPException: 401 if no token, 403 if the token is wrong
        """
        if not credentials:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Not authenticated",
                headers={"WWW-Authenticate": "Bearer"},
            )

        expected = self.token_getter()
        if not expected or not secrets.compare_digest(
            credentials.credentials.encode(), expected.encode()
        ):
            logger.warning("capability_denied", capability=self.name)
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"{self.name.capitalize()} access required",
            )

        return (x_actor or "").strip() or self.name


# Pre-configured capabilities
require_admin = TokenCapability("admin", lambda: settings.admin_api_token)
require_storefront = TokenCapability("storefront", lambda: settings.storefront_api_token)
