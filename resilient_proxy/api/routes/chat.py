"""
Chat completion API routes (OpenAI compatible).

One ``POST <route>/chat/completions`` route is registered per configured
endpoint.
"""
from typing import Callable

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.background import BackgroundTask

from resilient_proxy.api.dependencies import APIKeyVerifier
from resilient_proxy.api.schemas import ErrorResponse
from resilient_proxy.core.exceptions import InvalidRequestError
from resilient_proxy.core.logger import get_logger
from resilient_proxy.models.provider import Endpoint
from resilient_proxy.services.registry import EndpointRegistry
from resilient_proxy.services.router import Dispatcher

logger = get_logger(__name__)

STREAM_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def _make_handler(endpoint: Endpoint, dispatcher: Dispatcher) -> Callable:
    async def create_chat_completion(http_request: Request):
        """Relay a chat completion to the endpoint's providers."""
        try:
            body = await http_request.json()
        except ValueError:
            raise InvalidRequestError("Invalid request body")
        
        result = await dispatcher.dispatch(endpoint, body)
        
        if result.is_stream:
            return StreamingResponse(
                result.stream,
                media_type="text/event-stream",
                headers={**STREAM_HEADERS, "X-Provider": result.provider},
                background=BackgroundTask(result.aclose)
            )
        
        return JSONResponse(
            status_code=result.status_code,
            content=result.body,
            headers={"X-Provider": result.provider}
        )
    
    return create_chat_completion


def build_router(
    registry: EndpointRegistry,
    dispatcher: Dispatcher,
    master_key: str
) -> APIRouter:
    """
    Create the chat completion routes for every endpoint.
    
    Args:
        registry: Configured endpoints
        dispatcher: Dispatcher shared by all routes
        master_key: Key accepted on every endpoint
        
    Returns:
        Router with one route per endpoint
    """
    router = APIRouter(tags=["chat"])
    
    for endpoint in registry:
        path = f"{endpoint.route}/chat/completions"
        router.add_api_route(
            path,
            _make_handler(endpoint, dispatcher),
            methods=["POST"],
            name=f"chat_completions:{endpoint.route}",
            dependencies=[Depends(APIKeyVerifier(master_key, endpoint.api_key))],
            responses={
                400: {"model": ErrorResponse},
                401: {"model": ErrorResponse},
                500: {"model": ErrorResponse},
            }
        )
        logger.debug("Registered endpoint", path=path, mode=endpoint.mode.value)
    
    return router
