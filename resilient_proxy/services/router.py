"""
Request dispatcher with provider failover.
"""
import asyncio
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Awaitable, Callable, Optional, TypeVar

from pydantic import ValidationError

from resilient_proxy.api.schemas import ChatCompletionRequest, build_upstream_payload
from resilient_proxy.core.exceptions import InvalidRequestError, NoProvidersAvailableError
from resilient_proxy.core.logger import get_logger
from resilient_proxy.models.provider import Endpoint, Provider
from resilient_proxy.providers.base import (
    ChunkStream,
    UpstreamClient,
    UpstreamError,
    UpstreamStatusError,
    UpstreamTarget,
)
from resilient_proxy.services.balancer import Selector

logger = get_logger(__name__)

T = TypeVar("T")

# Statuses that mean the provider itself is unusable (auth, quota, outage)
DEAD_STATUS_CODES = frozenset({401, 403, 429, 500, 503})
MAX_BACKOFF_SECONDS = 10.0
STREAM_TERMINATOR = "[DONE]"


def is_liveness_failure(error: UpstreamError) -> bool:
    """
    Classify an upstream failure.
    
    Transport failures, the statuses in ``DEAD_STATUS_CODES`` and any other
    5xx count against the provider. Remaining 4xx statuses are the caller's
    problem and are forwarded as-is.
    """
    if isinstance(error, UpstreamStatusError):
        return error.status_code in DEAD_STATUS_CODES or error.status_code >= 500
    return True


def format_event(data: str) -> str:
    """Frame one payload as a server-sent event."""
    return f"data: {data}\n\n"


@dataclass
class RelayResult:
    """
    Outcome of a dispatched request.
    
    Either a complete ``body`` with ``status_code`` (a completion, or an
    upstream client error forwarded verbatim) or a ``stream`` of framed
    events to relay to the caller.
    """
    
    provider: str
    status_code: int = 200
    body: Any = None
    stream: Optional[AsyncIterator[str]] = None
    upstream_stream: Optional[ChunkStream] = field(default=None, repr=False)
    
    @property
    def is_stream(self) -> bool:
        return self.stream is not None
    
    async def aclose(self) -> None:
        """Stop relaying and release the upstream connection."""
        if self.stream is not None:
            await self.stream.aclose()
        if self.upstream_stream is not None:
            await self.upstream_stream.aclose()


class Dispatcher:
    """
    Drives one request through an endpoint's providers.
    
    Candidates are tried strictly one after another in the order given by
    the selector. The first success is returned; providers failing with a
    liveness error are marked dead and skipped; an upstream client error
    stops the search and is returned to the caller unchanged.
    """
    
    def __init__(
        self,
        upstream: UpstreamClient,
        selector: Optional[Selector] = None,
        retry_backoff: float = 0.0
    ):
        """
        Initialize dispatcher.
        
        Args:
            upstream: Chat completion capability used for every attempt
            selector: Candidate ordering strategy
            retry_backoff: Base delay in seconds between retries of one provider
        """
        self.upstream = upstream
        self.selector = selector or Selector()
        self.retry_backoff = retry_backoff
    
    @staticmethod
    def parse_request(body: Any) -> ChatCompletionRequest:
        """
        Validate the caller's request body.
        
        Raises:
            InvalidRequestError: If ``messages`` is missing, empty or malformed
        """
        if isinstance(body, ChatCompletionRequest):
            return body
        if not isinstance(body, dict):
            raise InvalidRequestError("Invalid request body")
        try:
            return ChatCompletionRequest.model_validate(body)
        except ValidationError as e:
            fields = ", ".join(
                ".".join(str(part) for part in err["loc"]) for err in e.errors()
            )
            raise InvalidRequestError(f"Invalid request body: {fields}") from e
    
    async def dispatch(self, endpoint: Endpoint, body: Any) -> RelayResult:
        """
        Relay a request to the first provider that accepts it.
        
        Args:
            endpoint: Target endpoint
            body: Caller's request (raw JSON object or parsed request)
            
        Returns:
            Relay result for the caller
            
        Raises:
            InvalidRequestError: If the body is malformed; no provider is contacted
            NoProvidersAvailableError: If no provider is live or all of them failed
        """
        request = self.parse_request(body)
        logger.debug("Dispatching request", endpoint=endpoint.route, body=body)
        
        candidates = self.selector.select(endpoint)
        if not candidates:
            logger.error("All providers dead", endpoint=endpoint.route)
            raise NoProvidersAvailableError(endpoint.route)
        
        for provider in candidates:
            payload = build_upstream_payload(request, provider.model)
            
            try:
                if request.wants_stream:
                    stream = await self._attempt(
                        endpoint, provider,
                        lambda target: self.upstream.open_stream(target, payload)
                    )
                    logger.info(
                        "Streaming answer",
                        provider=provider.name,
                        endpoint=endpoint.route
                    )
                    return RelayResult(
                        provider=provider.name,
                        stream=self._relay(endpoint, provider, stream),
                        upstream_stream=stream
                    )
                
                completion = await self._attempt(
                    endpoint, provider,
                    lambda target: self.upstream.chat_completion(target, payload)
                )
                logger.info(
                    "Returning answer",
                    provider=provider.name,
                    endpoint=endpoint.route
                )
                return RelayResult(provider=provider.name, body=completion)
            
            except UpstreamStatusError as e:
                if is_liveness_failure(e):
                    logger.warning(
                        "Marking provider dead",
                        provider=provider.name,
                        endpoint=endpoint.route,
                        status_code=e.status_code
                    )
                    provider.mark_dead()
                    continue
                
                logger.info(
                    "Forwarding upstream client error",
                    provider=provider.name,
                    endpoint=endpoint.route,
                    status_code=e.status_code
                )
                body = e.body if e.body is not None else {"error": {"message": str(e)}}
                return RelayResult(provider=provider.name, status_code=e.status_code, body=body)
            
            except UpstreamError as e:
                logger.warning(
                    "Network error, marking provider dead",
                    provider=provider.name,
                    endpoint=endpoint.route,
                    error=str(e)
                )
                provider.mark_dead()
        
        logger.error(
            "All providers failed",
            endpoint=endpoint.route,
            providers_tried=[p.name for p in candidates]
        )
        raise NoProvidersAvailableError(endpoint.route)
    
    async def _attempt(
        self,
        endpoint: Endpoint,
        provider: Provider,
        call: Callable[[UpstreamTarget], Awaitable[T]]
    ) -> T:
        """
        Call one provider, retrying liveness failures up to ``provider.retries`` times.
        
        The last error is re-raised for the caller to classify.
        """
        target = UpstreamTarget.for_provider(provider)
        attempts = provider.retries + 1
        
        attempt = 0
        while True:
            attempt += 1
            logger.info(
                "Trying provider",
                provider=provider.name,
                endpoint=endpoint.route,
                attempt=attempt,
                attempts=attempts
            )
            provider.mark_used()
            try:
                return await call(target)
            except UpstreamError as e:
                if not is_liveness_failure(e) or attempt >= attempts:
                    raise
                logger.info(
                    "Retrying provider",
                    provider=provider.name,
                    endpoint=endpoint.route,
                    error=str(e)
                )
                if self.retry_backoff > 0:
                    await asyncio.sleep(min(self.retry_backoff * 2 ** (attempt - 1), MAX_BACKOFF_SECONDS))
    
    async def _relay(
        self,
        endpoint: Endpoint,
        provider: Provider,
        stream: ChunkStream
    ) -> AsyncIterator[str]:
        """
        Forward upstream events in order, then the terminator.
        
        A failure after relaying has begun marks the provider dead and ends
        the caller's stream without a terminator; there is no fallback to
        another provider once output has been sent.
        """
        try:
            async for chunk in stream:
                logger.debug("Relaying chunk", provider=provider.name, chunk=chunk)
                yield format_event(chunk)
            yield format_event(STREAM_TERMINATOR)
            logger.info(
                "Finished stream",
                provider=provider.name,
                endpoint=endpoint.route
            )
        except UpstreamError as e:
            logger.error(
                "Stream error",
                provider=provider.name,
                endpoint=endpoint.route,
                error=str(e)
            )
            provider.mark_dead()
        finally:
            await stream.aclose()
