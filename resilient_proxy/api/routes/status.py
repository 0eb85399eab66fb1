"""
Liveness and provider status routes.
"""
from typing import Dict, List

from fastapi import APIRouter, Depends

from resilient_proxy.api.dependencies import APIKeyVerifier, get_registry
from resilient_proxy.services.registry import EndpointRegistry


def build_router(master_key: str) -> APIRouter:
    """
    Create the health and status routes.
    
    ``/health`` is unauthenticated; ``/status`` requires the master key.
    """
    router = APIRouter(tags=["root"])
    
    @router.get("/health")
    @router.get("/healthz")
    async def health_check():
        """Health check endpoint for load balancers."""
        return {"status": "healthy"}
    
    @router.get(
        "/status",
        dependencies=[Depends(APIKeyVerifier(master_key))]
    )
    async def provider_status(
        registry: EndpointRegistry = Depends(get_registry)
    ) -> Dict[str, List[dict]]:
        """Liveness of every provider, grouped by endpoint."""
        return {
            route: [
                provider.model_dump(by_alias=True, mode="json")
                for provider in providers
            ]
            for route, providers in registry.status().items()
        }
    
    return router
