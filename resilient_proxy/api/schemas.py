"""
API request/response schemas using Pydantic models.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


# ============================================================================
# Chat Completion Schemas (OpenAI compatible)
# ============================================================================

class ChatCompletionRequest(BaseModel):
    """
    Inbound chat completion request.
    
    Only ``messages`` must be valid (a non-empty list). ``stream`` is read
    for its truthiness; every other field, ``model`` included, is passed to
    the upstream untouched.
    """
    model_config = ConfigDict(extra="allow")
    
    messages: List[Any] = Field(..., min_length=1)
    stream: Any = None
    model: Any = None
    
    @property
    def wants_stream(self) -> bool:
        return bool(self.stream)


def build_upstream_payload(
    request: ChatCompletionRequest,
    model_override: Optional[str] = None
) -> Dict[str, Any]:
    """
    Merge the caller's request with a provider's forced model.
    
    Args:
        request: Validated inbound request
        model_override: Model every request to the provider must use
        
    Returns:
        New outbound request body; the caller's fields are kept as sent
    """
    payload = request.model_dump(exclude_unset=True)
    if model_override:
        payload["model"] = model_override
    payload["stream"] = request.wants_stream
    return payload


# ============================================================================
# Status Schemas
# ============================================================================

class ProviderStatus(BaseModel):
    """Point-in-time liveness of one provider."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
    
    name: str
    is_dead: bool
    last_used_at: Optional[datetime] = None
    last_failed_at: Optional[datetime] = None


# ============================================================================
# Error Schemas
# ============================================================================

class ErrorDetail(BaseModel):
    """Error detail model."""
    code: str
    message: str


class ErrorResponse(BaseModel):
    """Error response model."""
    error: ErrorDetail
