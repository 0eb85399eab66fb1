"""
OpenAI-compatible upstream client.
"""
import asyncio
from typing import Any, AsyncIterator, Dict, Optional

import httpx

from resilient_proxy.core.logger import get_logger
from resilient_proxy.providers.base import (
    ChunkStream,
    UpstreamClient,
    UpstreamStatusError,
    UpstreamTarget,
    UpstreamTransportError,
)

logger = get_logger(__name__)

DONE_MARKER = "[DONE]"


def _decode_error_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return {"error": {"message": response.text}}


class HttpxChunkStream(ChunkStream):
    """Server-sent event stream read from an open httpx response."""
    
    def __init__(self, response: httpx.Response):
        self._response = response
    
    async def __aiter__(self) -> AsyncIterator[str]:
        try:
            async for line in self._response.aiter_lines():
                # Skip empty lines and comments
                if not line or line.startswith(":"):
                    continue
                if not line.startswith("data:"):
                    continue
                
                data = line[5:].strip()
                if data == DONE_MARKER:
                    break
                if data:
                    yield data
        except httpx.HTTPError as e:
            raise UpstreamTransportError(f"Stream interrupted: {e}") from e
    
    async def aclose(self) -> None:
        await self._response.aclose()


class OpenAIUpstream(UpstreamClient):
    """Chat completion client for OpenAI-compatible APIs."""
    
    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        """
        Initialize client.
        
        Args:
            transport: Optional httpx transport (used by tests)
        """
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
    
    def get_client(self) -> httpx.AsyncClient:
        """
        Get or create HTTP client with connection pooling.
        
        Timeouts are set per call from the provider configuration.
        """
        if self._client is None:
            self._client = httpx.AsyncClient(
                transport=self._transport,
                limits=httpx.Limits(
                    max_keepalive_connections=10,
                    max_connections=100,
                    keepalive_expiry=30.0
                )
            )
        return self._client
    
    async def close(self) -> None:
        """Close HTTP client and cleanup resources."""
        if self._client:
            await self._client.aclose()
            self._client = None
    
    @staticmethod
    def prepare_headers(target: UpstreamTarget) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {target.api_key}",
            "User-Agent": "resilient-proxy/1.0"
        }
    
    @staticmethod
    def completions_url(target: UpstreamTarget) -> str:
        return f"{target.base_url.rstrip('/')}/chat/completions"
    
    async def chat_completion(
        self,
        target: UpstreamTarget,
        payload: Dict[str, Any]
    ) -> Dict[str, Any]:
        client = self.get_client()
        try:
            # httpx timeouts bound each read, wait_for bounds the whole attempt
            response = await asyncio.wait_for(
                client.post(
                    self.completions_url(target),
                    json=payload,
                    headers=self.prepare_headers(target),
                    timeout=target.timeout
                ),
                target.timeout
            )
        except asyncio.TimeoutError as e:
            raise UpstreamTransportError(f"Upstream did not answer within {target.timeout:g}s") from e
        except httpx.HTTPError as e:
            raise UpstreamTransportError(f"{type(e).__name__}: {e}") from e
        
        if response.is_error:
            logger.debug(
                "Upstream error response",
                url=str(response.url),
                status_code=response.status_code,
                body=response.text
            )
            raise UpstreamStatusError(response.status_code, _decode_error_body(response))
        
        try:
            return response.json()
        except ValueError as e:
            raise UpstreamTransportError(f"Invalid JSON from upstream: {e}") from e
    
    async def open_stream(
        self,
        target: UpstreamTarget,
        payload: Dict[str, Any]
    ) -> ChunkStream:
        client = self.get_client()
        request = client.build_request(
            "POST",
            self.completions_url(target),
            json=payload,
            headers=self.prepare_headers(target),
            timeout=target.timeout
        )
        try:
            response = await asyncio.wait_for(client.send(request, stream=True), target.timeout)
        except asyncio.TimeoutError as e:
            raise UpstreamTransportError(f"Upstream stream did not open within {target.timeout:g}s") from e
        except httpx.HTTPError as e:
            raise UpstreamTransportError(f"{type(e).__name__}: {e}") from e
        
        if response.is_error:
            try:
                await response.aread()
                body = _decode_error_body(response)
            except httpx.HTTPError:
                body = None
            finally:
                await response.aclose()
            raise UpstreamStatusError(response.status_code, body)
        
        return HttpxChunkStream(response)
