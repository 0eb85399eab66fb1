"""
Provider and Endpoint records.
"""
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from resilient_proxy.core.endpoints import EndpointSettings, ProviderSettings


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SelectionMode(str, Enum):
    """How an endpoint orders its providers for each request."""
    ORDERED = "ordered"
    RANDOM = "random"


@dataclass(eq=False)
class Provider:
    """
    One upstream target and its liveness state.
    
    Identity fields are fixed after load. ``is_dead``, ``last_used_at`` and
    ``last_failed_at`` are shared between request handlers and the recovery
    prober and are only changed through the methods below, which hold the
    per-provider lock.
    """
    
    name: str
    base_url: str
    api_key: str
    model: Optional[str] = None
    timeout: float = 30.0
    retries: int = 0
    
    is_dead: bool = field(default=False, init=False)
    last_used_at: Optional[datetime] = field(default=None, init=False)
    last_failed_at: Optional[datetime] = field(default=None, init=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    
    @classmethod
    def from_settings(cls, config: ProviderSettings) -> "Provider":
        return cls(
            name=config.name,
            base_url=config.api_endpoint,
            api_key=config.api_key,
            model=config.model,
            timeout=config.timeout_seconds,
            retries=config.retries,
        )
    
    def mark_used(self) -> None:
        with self._lock:
            self.last_used_at = utcnow()
    
    def mark_dead(self) -> None:
        with self._lock:
            self.is_dead = True
            self.last_failed_at = utcnow()
    
    def revive(self) -> None:
        with self._lock:
            self.is_dead = False
            self.last_failed_at = None
    
    def snapshot(self) -> Dict[str, Any]:
        """Point-in-time copy of the mutable state."""
        with self._lock:
            return {
                "name": self.name,
                "is_dead": self.is_dead,
                "last_used_at": self.last_used_at,
                "last_failed_at": self.last_failed_at,
            }


@dataclass(eq=False)
class Endpoint:
    """A routable virtual endpoint owning an ordered provider pool."""
    
    route: str
    providers: Tuple[Provider, ...]
    mode: SelectionMode = SelectionMode.ORDERED
    api_key: Optional[str] = None
    
    @classmethod
    def from_settings(cls, route: str, config: EndpointSettings) -> "Endpoint":
        # Each endpoint gets its own Provider instances, even for duplicated upstreams
        return cls(
            route=route,
            providers=tuple(Provider.from_settings(p) for p in config.providers),
            mode=SelectionMode(config.mode),
            api_key=config.api_key,
        )
    
    @property
    def live_providers(self) -> Tuple[Provider, ...]:
        return tuple(p for p in self.providers if not p.is_dead)
    
    @property
    def dead_providers(self) -> Tuple[Provider, ...]:
        return tuple(p for p in self.providers if p.is_dead)
