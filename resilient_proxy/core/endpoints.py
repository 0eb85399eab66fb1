"""
Endpoint table loading and validation.

The endpoint table is a JSON object mapping a route to its provider pool::

    {
        "/v1": {
            "mode": "ordered",
            "api_key": "endpoint-specific-key",
            "providers": [
                {"name": "OpenRouter", "api_endpoint": "https://openrouter.ai/api/v1",
                 "api_key": "...", "timeout": 20000, "retries": 1}
            ]
        }
    }
"""
import json
import re
from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from resilient_proxy.core.config import MIN_KEY_LENGTH
from resilient_proxy.core.exceptions import ConfigurationError


DEFAULT_TIMEOUT_MS = 30000
MODEL_PATTERN = re.compile(r"^[A-Za-z0-9._:/-]+$")


class ProviderSettings(BaseModel):
    """One upstream provider as declared in the endpoint table."""
    
    model_config = ConfigDict(extra="forbid", frozen=True)
    
    name: str
    api_endpoint: str
    api_key: str
    model: Optional[str] = None
    timeout: float = Field(default=DEFAULT_TIMEOUT_MS, description="Timeout in milliseconds")
    retries: int = Field(default=0, ge=0)
    
    @field_validator("name", "api_key")
    @classmethod
    def validate_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must be a non-empty string")
        return v
    
    @field_validator("api_endpoint")
    @classmethod
    def validate_api_endpoint(cls, v: str) -> str:
        if not v.startswith("http"):
            raise ValueError('must start with "http"')
        return v.rstrip("/")
    
    @field_validator("model")
    @classmethod
    def validate_model(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not MODEL_PATTERN.match(v):
            raise ValueError("must be a non-empty string of [A-Za-z0-9._:/-]")
        return v
    
    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 500:
            raise ValueError("must be a number greater than 500 (milliseconds)")
        return v
    
    @property
    def timeout_seconds(self) -> float:
        return self.timeout / 1000


class EndpointSettings(BaseModel):
    """A virtual endpoint and its provider pool."""
    
    model_config = ConfigDict(extra="forbid", frozen=True)
    
    mode: Literal["ordered", "random"] = "ordered"
    api_key: Optional[str] = None
    providers: List[ProviderSettings] = Field(..., min_length=1)
    
    @field_validator("api_key")
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        if len(v) < MIN_KEY_LENGTH:
            raise ValueError(f"must be at least {MIN_KEY_LENGTH} characters long")
        if re.search(r"\s", v):
            raise ValueError("must not contain spaces")
        return v
    
    @field_validator("providers")
    @classmethod
    def validate_unique_names(cls, v: List[ProviderSettings]) -> List[ProviderSettings]:
        seen = set()
        for provider in v:
            if provider.name in seen:
                raise ValueError(f'provider name "{provider.name}" is used more than once')
            seen.add(provider.name)
        return v


def normalize_route(route: str) -> str:
    """Normalize a route to a single leading slash and no trailing slash."""
    stripped = route.strip().strip("/")
    if not stripped:
        raise ConfigurationError(f'endpoint route "{route}" is empty')
    return f"/{stripped}"


def parse_endpoints(data: Any) -> Dict[str, EndpointSettings]:
    """
    Validate an in-memory endpoint table.
    
    Args:
        data: Mapping of route to endpoint definition
        
    Returns:
        Mapping of normalized route to validated endpoint settings
        
    Raises:
        ConfigurationError: If the table is empty or any entry is invalid
    """
    if not isinstance(data, dict) or not data:
        raise ConfigurationError("endpoints configuration is empty or invalid.")
    
    endpoints: Dict[str, EndpointSettings] = {}
    for route, raw in data.items():
        normalized = normalize_route(route)
        if normalized in endpoints:
            raise ConfigurationError(f'endpoint "{normalized}" is defined more than once.')
        try:
            endpoints[normalized] = EndpointSettings.model_validate(raw)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in err['loc']) or 'endpoint'}: {err['msg']}"
                for err in e.errors()
            )
            raise ConfigurationError(f'endpoint "{normalized}" is invalid: {problems}') from e
    
    return endpoints


def load_endpoints(path: Union[str, Path]) -> Dict[str, EndpointSettings]:
    """
    Read and validate the endpoint table from a JSON file.
    
    Raises:
        ConfigurationError: If the file is missing, unreadable or invalid
    """
    path = Path(path)
    try:
        with path.open(encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigurationError(f"Failed to read endpoints from {path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Failed to parse endpoints from {path}: {e}") from e
    
    return parse_endpoints(data)
