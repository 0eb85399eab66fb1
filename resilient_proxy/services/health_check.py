"""
Recovery prober bringing dead providers back into rotation.
"""
import asyncio
from typing import Any, Dict, List, Optional

from resilient_proxy.core.logger import get_logger
from resilient_proxy.models.provider import Endpoint, Provider
from resilient_proxy.providers.base import UpstreamClient, UpstreamTarget
from resilient_proxy.services.registry import EndpointRegistry

logger = get_logger(__name__)

PROBE_MESSAGES = [{"role": "system", "content": "say hello"}]


class RecoveryProber:
    """
    Periodically probes dead providers.
    
    Each tick sends a minimal completion request to every dead provider of
    every endpoint, concurrently. A successful probe revives the provider;
    a failed one leaves it dead until the next tick. There is no backoff.
    """
    
    def __init__(
        self,
        registry: EndpointRegistry,
        upstream: UpstreamClient,
        interval: float,
        probe_model: Optional[str] = None
    ):
        """
        Initialize prober.
        
        Args:
            registry: Endpoints whose providers are probed
            upstream: Same capability the dispatcher uses
            interval: Seconds between ticks (<= 0 disables the loop)
            probe_model: Model for providers without a model override
        """
        self.registry = registry
        self.upstream = upstream
        self.interval = interval
        self.probe_model = probe_model
    
    @property
    def enabled(self) -> bool:
        return self.interval > 0
    
    async def start(self) -> None:
        """Run the probe loop until cancelled."""
        if not self.enabled:
            logger.info("Dead provider check is disabled")
            return
        
        logger.info("Starting dead provider check", interval_seconds=self.interval)
        
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.probe_dead_providers()
            except Exception as e:
                logger.error(f"Dead provider check failed: {str(e)}", exc_info=True)
    
    async def probe_dead_providers(self) -> List[Dict[str, Any]]:
        """
        Probe every dead provider once.
        
        Returns:
            One result per probed provider
        """
        tasks = [
            self.probe(endpoint, provider)
            for endpoint in self.registry
            for provider in endpoint.dead_providers
        ]
        if not tasks:
            return []
        
        logger.debug(f"Probing {len(tasks)} dead providers")
        return list(await asyncio.gather(*tasks))
    
    def build_probe_payload(self, provider: Provider) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "messages": list(PROBE_MESSAGES),
            "stream": False,
        }
        model = provider.model or self.probe_model
        if model:
            payload["model"] = model
        return payload
    
    async def probe(self, endpoint: Endpoint, provider: Provider) -> Dict[str, Any]:
        """
        Probe a single provider; never raises.
        
        Returns:
            Probe result dictionary
        """
        try:
            await self.upstream.chat_completion(
                UpstreamTarget.for_provider(provider),
                self.build_probe_payload(provider)
            )
        except Exception as e:
            logger.debug(
                "Health check failed",
                provider=provider.name,
                endpoint=endpoint.route,
                error=str(e)
            )
            return {"endpoint": endpoint.route, "provider": provider.name, "recovered": False}
        
        provider.revive()
        logger.info(
            "Provider is back online",
            provider=provider.name,
            endpoint=endpoint.route
        )
        return {"endpoint": endpoint.route, "provider": provider.name, "recovered": True}
