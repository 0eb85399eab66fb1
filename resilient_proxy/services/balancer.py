"""
Provider selection for a single request.
"""
import random
from typing import List, Optional

from resilient_proxy.core.logger import get_logger
from resilient_proxy.models.provider import Endpoint, Provider, SelectionMode

logger = get_logger(__name__)


class Selector:
    """
    Produces the attempt order for one request.
    
    Only providers that are live at call time are returned:
    
    - ``ordered``: configured order, so the first live provider is always
      tried first and the rest act as fallbacks.
    - ``random``: a fresh uniform shuffle per call, no rotation state.
    
    An empty list means nothing is available; the selector never raises
    and never touches provider state.
    """
    
    def __init__(self, rng: Optional[random.Random] = None):
        self._rng = rng or random.Random()
    
    def select(self, endpoint: Endpoint) -> List[Provider]:
        candidates = list(endpoint.live_providers)
        
        if endpoint.mode is SelectionMode.RANDOM:
            self._rng.shuffle(candidates)
        
        logger.debug(
            "Selected providers",
            endpoint=endpoint.route,
            mode=endpoint.mode.value,
            providers=[p.name for p in candidates]
        )
        return candidates
