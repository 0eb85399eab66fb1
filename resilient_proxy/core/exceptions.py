"""
Gateway error types.
"""
from typing import Optional


class ConfigurationError(Exception):
    """Raised when process or endpoint configuration is invalid."""


class GatewayError(Exception):
    """Base class for errors reported to the caller by the gateway."""
    
    status_code: int = 500
    code: str = "internal_error"
    
    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        code: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if code is not None:
            self.code = code
    
    def to_dict(self) -> dict:
        return {"error": {"code": self.code, "message": self.message}}


class InvalidRequestError(GatewayError):
    """Malformed request body; no provider is contacted."""
    
    status_code = 400
    code = "invalid_request"


class NoProvidersAvailableError(GatewayError):
    """Every candidate provider is dead or has failed."""
    
    status_code = 500
    code = "no_providers_available"
    
    def __init__(self, route: str):
        super().__init__(f"No available providers for {route}")
        self.route = route


class UnauthorizedError(GatewayError):
    """Missing or wrong bearer credential."""
    
    status_code = 401
    code = "unauthorized"
    
    def __init__(self, message: str = "Unauthorized"):
        super().__init__(message)
