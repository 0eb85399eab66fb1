"""
Upstream chat completion clients with a unified interface.
"""
from resilient_proxy.providers.base import (
    ChunkStream,
    UpstreamClient,
    UpstreamError,
    UpstreamStatusError,
    UpstreamTarget,
    UpstreamTransportError,
)
from resilient_proxy.providers.openai import OpenAIUpstream

__all__ = [
    "ChunkStream",
    "OpenAIUpstream",
    "UpstreamClient",
    "UpstreamError",
    "UpstreamStatusError",
    "UpstreamTarget",
    "UpstreamTransportError",
]
