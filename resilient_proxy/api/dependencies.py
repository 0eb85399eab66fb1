"""
FastAPI dependencies for dependency injection.
"""
import secrets
from typing import Optional

from fastapi import Header, Request

from resilient_proxy.core.exceptions import UnauthorizedError
from resilient_proxy.core.logger import get_logger
from resilient_proxy.services.registry import EndpointRegistry

logger = get_logger(__name__)


# ============================================================================
# Application State Dependencies
# ============================================================================

def get_registry(request: Request) -> EndpointRegistry:
    """Get the endpoint registry built at startup."""
    return request.app.state.registry


# ============================================================================
# Request Context Dependencies
# ============================================================================

async def get_client_ip(
    request: Request,
    x_forwarded_for: Optional[str] = Header(None),
    x_real_ip: Optional[str] = Header(None),
) -> Optional[str]:
    """
    Get client IP address from headers.
    
    Args:
        request: Incoming request
        x_forwarded_for: X-Forwarded-For header value
        x_real_ip: X-Real-IP header value
        
    Returns:
        Client IP address
    """
    # Try X-Forwarded-For first (may contain multiple IPs)
    if x_forwarded_for:
        # Get the first IP in the chain (original client)
        return x_forwarded_for.split(",")[0].strip()
    
    # Fall back to X-Real-IP
    if x_real_ip:
        return x_real_ip.strip()
    
    return request.client.host if request.client else None


def extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    """Return the token of a ``Bearer <token>`` header, if any."""
    if not authorization:
        return None
    parts = authorization.split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    return None


# ============================================================================
# Authentication Dependencies
# ============================================================================

class APIKeyVerifier:
    """
    Accepts a request when its bearer token matches one of the given keys.
    
    Used with the master key alone for the status surface, and with the
    master key plus the endpoint key for an endpoint's routes.
    """
    
    def __init__(self, *keys: Optional[str]):
        self.keys = [key for key in keys if key]
    
    def is_valid(self, token: Optional[str]) -> bool:
        if not token:
            return False
        return any(
            secrets.compare_digest(token.encode(), key.encode())
            for key in self.keys
        )
    
    async def __call__(
        self,
        request: Request,
        authorization: Optional[str] = Header(None),
        x_forwarded_for: Optional[str] = Header(None),
        x_real_ip: Optional[str] = Header(None),
    ) -> str:
        """
        Verify the bearer token.
        
        Raises:
            UnauthorizedError: If the token is missing or invalid
        """
        token = extract_bearer_token(authorization)
        if not self.is_valid(token):
            client_ip = await get_client_ip(request, x_forwarded_for, x_real_ip)
            logger.warning(
                "Unauthorized access attempt",
                client_ip=client_ip,
                path=request.url.path
            )
            raise UnauthorizedError()
        return token
