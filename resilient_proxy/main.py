"""
Main FastAPI application entry point.
"""
import asyncio
import json
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from resilient_proxy import __version__
from resilient_proxy.api.middleware import setup_middleware
from resilient_proxy.api.routes import chat, status
from resilient_proxy.core.config import Settings, settings
from resilient_proxy.core.endpoints import load_endpoints
from resilient_proxy.core.exceptions import GatewayError
from resilient_proxy.core.logger import get_logger, obfuscate
from resilient_proxy.providers.base import UpstreamClient
from resilient_proxy.providers.openai import OpenAIUpstream
from resilient_proxy.services.health_check import RecoveryProber
from resilient_proxy.services.registry import EndpointRegistry
from resilient_proxy.services.router import Dispatcher

logger = get_logger(__name__)


# ============================================================================
# Application Lifespan
# ============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.
    
    Starts the recovery prober and closes upstream connections on shutdown.
    """
    prober: RecoveryProber = app.state.prober
    
    prober_task = None
    if prober.enabled:
        prober_task = asyncio.create_task(prober.start())
        logger.info("Dead provider check started", interval_seconds=prober.interval)
    
    logger.info(
        "Resilient proxy is ready",
        endpoints=app.state.registry.routes
    )
    
    yield
    
    logger.info("Shutting down resilient proxy")
    
    if prober_task is not None:
        prober_task.cancel()
        try:
            await prober_task
        except asyncio.CancelledError:
            logger.info("Dead provider check stopped")
    
    await app.state.upstream.close()


# ============================================================================
# Startup Settings
# ============================================================================

def log_startup_settings(config: Settings, registry: EndpointRegistry) -> None:
    """Log effective settings with every credential obfuscated."""
    startup = {
        "LOG_LEVEL": config.log_level,
        "API_KEY": obfuscate(config.master_api_key),
        "API_PORT": config.port,
        "DEAD_PROVIDER_CHECK_PERIOD": (
            config.dead_provider_check_period if config.probe_enabled else "disabled"
        ),
        "ENDPOINTS": registry.describe(),
    }
    logger.info(f"=== Startup Settings ===\n{json.dumps(startup, indent=2)}")


# ============================================================================
# Error Handlers
# ============================================================================

async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
    """Render gateway errors in the common error envelope."""
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def not_found_handler(request: Request, exc) -> JSONResponse:
    """Handle 404 errors."""
    return JSONResponse(
        status_code=404,
        content={
            "error": {
                "code": "not_found",
                "message": "The requested resource was not found",
                "path": str(request.url.path)
            }
        }
    )


# ============================================================================
# Application Factory
# ============================================================================

def create_app(
    config: Optional[Settings] = None,
    registry: Optional[EndpointRegistry] = None,
    upstream: Optional[UpstreamClient] = None
) -> FastAPI:
    """
    Create and configure FastAPI application.
    
    Args:
        config: Process settings (defaults to the environment)
        registry: Endpoint registry (defaults to the configured endpoints file)
        upstream: Upstream capability (defaults to the OpenAI-compatible client)
        
    Returns:
        Configured FastAPI application instance
        
    Raises:
        ConfigurationError: If settings or the endpoints file are invalid
    """
    config = config or settings
    config.validate_master_key()
    
    if registry is None:
        registry = EndpointRegistry.from_settings(load_endpoints(config.endpoints_file))
    upstream = upstream or OpenAIUpstream()
    
    dispatcher = Dispatcher(upstream, retry_backoff=config.retry_backoff)
    prober = RecoveryProber(
        registry,
        upstream,
        interval=config.probe_interval_seconds,
        probe_model=config.probe_model
    )
    
    app = FastAPI(
        title=config.app_name,
        description="Failover proxy for OpenAI-compatible chat completion APIs",
        version=__version__,
        docs_url="/docs" if config.is_development else None,
        redoc_url=None,
        openapi_url="/openapi.json" if config.is_development else None,
        lifespan=lifespan
    )
    app.state.settings = config
    app.state.registry = registry
    app.state.upstream = upstream
    app.state.dispatcher = dispatcher
    app.state.prober = prober
    
    setup_middleware(app)
    app.add_exception_handler(GatewayError, gateway_error_handler)
    app.add_exception_handler(404, not_found_handler)
    
    app.include_router(status.build_router(config.master_api_key))
    app.include_router(chat.build_router(registry, dispatcher, config.master_api_key))
    
    log_startup_settings(config, registry)
    logger.info("Routes registered", endpoints=registry.routes)
    
    return app
