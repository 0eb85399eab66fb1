"""
Base upstream client abstract class and call target.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, Optional

from resilient_proxy.models.provider import Provider


@dataclass(frozen=True)
class UpstreamTarget:
    """Where and how to send one upstream call."""
    
    base_url: str
    api_key: str
    timeout: float = 30.0
    
    @classmethod
    def for_provider(cls, provider: Provider) -> "UpstreamTarget":
        return cls(
            base_url=provider.base_url,
            api_key=provider.api_key,
            timeout=provider.timeout,
        )


class UpstreamError(Exception):
    """Base class for failed upstream calls."""


class UpstreamStatusError(UpstreamError):
    """The upstream answered with an HTTP error status."""
    
    def __init__(self, status_code: int, body: Any = None, message: Optional[str] = None):
        super().__init__(message or f"Upstream returned HTTP {status_code}")
        self.status_code = status_code
        self.body = body


class UpstreamTransportError(UpstreamError):
    """Network, timeout or protocol failure talking to the upstream."""


class ChunkStream(ABC):
    """
    An opened upstream stream.
    
    Iterating yields the raw payload of each event in arrival order; the
    upstream end-of-stream marker is not yielded.
    """
    
    @abstractmethod
    def __aiter__(self) -> AsyncIterator[str]:
        pass
    
    @abstractmethod
    async def aclose(self) -> None:
        """Release the upstream connection."""
        pass


class UpstreamClient(ABC):
    """Abstract OpenAI-compatible chat completion capability."""
    
    @abstractmethod
    async def chat_completion(
        self,
        target: UpstreamTarget,
        payload: Dict[str, Any]
    ) -> Dict[str, Any]:
        """
        Send a non-streaming chat completion request.
        
        Args:
            target: Upstream address, credential and timeout
            payload: Outbound request body
            
        Returns:
            Decoded upstream response body
            
        Raises:
            UpstreamStatusError: On an HTTP error status
            UpstreamTransportError: On network, timeout or decoding failures
        """
        pass
    
    @abstractmethod
    async def open_stream(
        self,
        target: UpstreamTarget,
        payload: Dict[str, Any]
    ) -> ChunkStream:
        """
        Open a streaming chat completion request.
        
        The upstream status is checked before returning, so a returned
        stream has been accepted by the upstream.
        
        Raises:
            UpstreamStatusError: On an HTTP error status
            UpstreamTransportError: On network or timeout failures
        """
        pass
    
    async def close(self) -> None:
        """Close underlying connections."""
        pass
    
    async def __aenter__(self):
        return self
    
    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
