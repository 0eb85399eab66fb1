"""
Endpoint registry mapping routes to provider pools.
"""
from typing import Dict, Iterator, List, Mapping, Optional

from resilient_proxy.api.schemas import ProviderStatus
from resilient_proxy.core.endpoints import EndpointSettings, normalize_route
from resilient_proxy.core.logger import get_logger, obfuscate
from resilient_proxy.models.provider import Endpoint

logger = get_logger(__name__)


class EndpointRegistry:
    """Routes to endpoints, fixed after startup."""
    
    def __init__(self, endpoints: Optional[List[Endpoint]] = None):
        self._endpoints: Dict[str, Endpoint] = {}
        for endpoint in endpoints or []:
            self.add(endpoint)
    
    @classmethod
    def from_settings(cls, config: Mapping[str, EndpointSettings]) -> "EndpointRegistry":
        return cls([
            Endpoint.from_settings(normalize_route(route), endpoint_config)
            for route, endpoint_config in config.items()
        ])
    
    def add(self, endpoint: Endpoint) -> None:
        if endpoint.route in self._endpoints:
            raise ValueError(f"Endpoint {endpoint.route} is already registered")
        self._endpoints[endpoint.route] = endpoint
    
    def get(self, route: str) -> Optional[Endpoint]:
        return self._endpoints.get(route)
    
    @property
    def routes(self) -> List[str]:
        return list(self._endpoints)
    
    def __iter__(self) -> Iterator[Endpoint]:
        return iter(list(self._endpoints.values()))
    
    def status(self) -> Dict[str, List[ProviderStatus]]:
        """Snapshot of every provider's liveness, grouped by route."""
        return {
            endpoint.route: [
                ProviderStatus(**provider.snapshot())
                for provider in endpoint.providers
            ]
            for endpoint in self
        }
    
    def describe(self) -> Dict[str, dict]:
        """Endpoint table with credentials obfuscated, for startup logging."""
        return {
            endpoint.route: {
                "mode": endpoint.mode.value,
                "api_key": obfuscate(endpoint.api_key) if endpoint.api_key else None,
                "providers": {
                    provider.name: {
                        "api_endpoint": provider.base_url,
                        "api_key": obfuscate(provider.api_key),
                        "model": provider.model,
                        "timeout": f"{provider.timeout:g}s",
                        "retries": provider.retries,
                    }
                    for provider in endpoint.providers
                },
            }
            for endpoint in self
        }
