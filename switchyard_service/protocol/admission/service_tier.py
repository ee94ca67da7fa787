import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from switchyard_service.core.types import CallerIdentity, ServiceTier


@dataclass(frozen=True)
class TierDecision:
    tier: ServiceTier
    reason: str


class ServiceTierSelector:
    """
    Pick the provider latency tier for a request.

    Interactive callers get the fastest tier they are entitled to; anonymous
    and background work get the default/flex tiers. With `ramp_limit` set,
    callers nearing that many priority requests per window are downgraded to
    the default tier to avoid provider-side ramp downgrades.
    """

    def __init__(
        self,
        force: Optional[str] = None,
        interactive: str = ServiceTier.PRIORITY,
        anonymous: str = ServiceTier.DEFAULT,
        background: str = ServiceTier.FLEX,
        ramp_limit: Optional[int] = None,
        ramp_window_sec: float = 3600,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.force = ServiceTier(force) if force else None
        self.interactive = ServiceTier(interactive)
        self.anonymous = ServiceTier(anonymous)
        self.background = ServiceTier(background)
        self.ramp_limit = ramp_limit
        self.ramp_window_sec = ramp_window_sec
        self._clock = clock
        self._ramp: Dict[str, Tuple[float, int]] = {}
        self._ramp_lock = threading.Lock()

    def select_tier(self, identity: CallerIdentity, is_user_facing: bool) -> TierDecision:
        if self.force is not None:
            return TierDecision(self.force, f"Forced tier: {self.force}")

        if not is_user_facing:
            return TierDecision(self.background, "Background task")

        if not identity.is_authenticated:
            return TierDecision(self.anonymous, "Anonymous caller")

        if self.interactive == ServiceTier.PRIORITY and not self._ramp_allows(identity.rate_limit_key):
            return TierDecision(self.anonymous, "Priority ramp limit approaching")

        return TierDecision(self.interactive, "User-facing request")

    def _ramp_allows(self, key: str) -> bool:
        if not self.ramp_limit:
            return True
        now = self._clock()
        with self._ramp_lock:
            window_start, count = self._ramp.get(key, (now, 0))
            if now - window_start > self.ramp_window_sec:
                window_start, count = now, 0
            count += 1
            self._ramp[key] = (window_start, count)
        return count / self.ramp_limit < 0.9
