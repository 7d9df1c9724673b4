"""
Admission control: duplicate-event suppression and per-actor rate limiting

Runs before any expensive work. `admit` never awaits, so under one event
loop each call is atomic; the per-key store lock additionally serializes
callers coming from worker threads.
"""

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from forgedeploy.database import KeyedStateStore
from forgedeploy.models import RateState

logger = logging.getLogger(__name__)


class Decision(str, Enum):
    ALLOW = 'allow'
    DUPLICATE = 'duplicate'
    RATE_LIMITED = 'rate_limited'


@dataclass(frozen=True)
class Admission:
    decision: Decision
    retry_after: int = 0

    @property
    def allowed(self) -> bool:
        return self.decision is Decision.ALLOW


class RequestGate:
    """Deduplicator plus rate limiter

    Rate policy per actor: at most `max_requests` within `time_window`
    seconds, counted from the first request of the window. The request that
    exceeds the limit starts a `cooldown` during which everything is
    rejected; once the cooldown is over the window restarts from zero.
    """

    def __init__(self, clock, max_requests: int = 3, time_window: int = 3600,
                 cooldown: int = 86_400, dedup_ttl: Optional[int] = None,
                 rate_states: Optional[KeyedStateStore] = None):
        if max_requests < 1:
            raise ValueError("max_requests must be at least 1")
        self.clock = clock
        self.max_requests = max_requests
        self.time_window = time_window
        self.cooldown = cooldown
        self.dedup_ttl = dedup_ttl
        self.rate_states = rate_states if rate_states is not None else KeyedStateStore('rate_state')
        # (source_id, event_id) -> first seen, oldest first
        self._seen: 'OrderedDict[Tuple[str, str], int]' = OrderedDict()
        self._seen_lock = threading.Lock()

    def admit(self, source_id: str, event_id: str, actor_id: str) -> Admission:
        now = self.clock.now()
        if self._mark_seen(source_id, event_id, now):
            logger.info(f"Duplicate event {source_id}:{event_id} from {actor_id} ignored")
            return Admission(Decision.DUPLICATE)

        admission = self._check_rate(actor_id, now)
        if admission.allowed:
            logger.debug(f"Admitted {source_id}:{event_id} from {actor_id}")
        else:
            logger.warning(f"Rate limited {actor_id} on {source_id}:{event_id} (retry in {admission.retry_after}s)")
        return admission

    def _mark_seen(self, source_id: str, event_id: str, now: int) -> bool:
        """Record the event; True when it had already been seen"""
        key = (source_id, str(event_id))
        with self._seen_lock:
            self._evict_expired(now)
            if key in self._seen:
                return True
            self._seen[key] = now
            return False

    def _evict_expired(self, now: int) -> None:
        if self.dedup_ttl is None:
            return
        while self._seen:
            key, seen_at = next(iter(self._seen.items()))
            if now - seen_at < self.dedup_ttl:
                break
            self._seen.popitem(last=False)

    def _check_rate(self, actor_id: str, now: int) -> Admission:
        with self.rate_states.locked(actor_id):
            state = self.rate_states.get(actor_id)

            if state is None:
                self.rate_states.put(actor_id, RateState(window_start=now, request_count=1))
                return Admission(Decision.ALLOW)

            if state.cooldown_until:
                if now < state.cooldown_until:
                    return Admission(Decision.RATE_LIMITED, retry_after=state.cooldown_until - now)
                # Cooldown over: full reset
                state.window_start = now
                state.request_count = 1
                state.cooldown_until = 0
                return Admission(Decision.ALLOW)

            if now - state.window_start < self.time_window:
                if state.request_count >= self.max_requests:
                    state.cooldown_until = now + self.cooldown
                    return Admission(Decision.RATE_LIMITED, retry_after=self.cooldown)
                state.request_count += 1
                return Admission(Decision.ALLOW)

            state.window_start = now
            state.request_count = 1
            return Admission(Decision.ALLOW)

    def get_rate_state(self, actor_id: str) -> Optional[RateState]:
        return self.rate_states.get(actor_id)

    def seen_count(self) -> int:
        return len(self._seen)
