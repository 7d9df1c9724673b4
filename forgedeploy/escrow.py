"""
Liquidity lock escrow

Holds liquidity-provider shares until maturity. A lock's amount leaves the
escrow only to its depositor, only once `now >= unlock_time`, and only
once: unlocking removes the record.
"""

import logging
import uuid
from collections import defaultdict
from typing import Callable, Dict, List, Optional

from forgedeploy.database import KeyedStateStore
from forgedeploy.errors import NotAuthorized, PolicyViolation, StateConflict, ValidationError
from forgedeploy.models import Lock

logger = logging.getLogger(__name__)


def _new_lock_id() -> str:
    return '0x' + uuid.uuid4().hex


class LiquidityLockEscrow:

    def __init__(self, clock, min_lock_duration: int, store: Optional[KeyedStateStore] = None,
                 id_factory: Callable[[], str] = _new_lock_id):
        self.clock = clock
        self.min_lock_duration = min_lock_duration
        self.store = store if store is not None else KeyedStateStore('locks')
        self.id_factory = id_factory
        self._held: Dict[str, int] = defaultdict(int)

    def lock(self, depositor: str, token_type: str, amount: int, duration: int) -> Lock:
        """Escrow `amount` of `token_type` for `duration` seconds"""
        if amount <= 0:
            raise ValidationError("Lock amount must be positive", reason='invalid_amount')
        if duration < self.min_lock_duration:
            raise PolicyViolation(
                f"Lock duration {duration}s is below the minimum of {self.min_lock_duration}s",
                reason='lock_too_short',
            )

        lock_id = self.id_factory()
        now = self.clock.now()
        with self.store.locked(lock_id):
            if lock_id in self.store:
                raise StateConflict(f"Lock id {lock_id} already in use", reason='lock_exists')
            lock = Lock(
                lock_id=lock_id,
                token_type=token_type,
                depositor=depositor,
                amount=amount,
                unlock_time=now + duration,
                locked_at=now,
            )
            self.store.put(lock_id, lock)
            self._held[token_type] += amount

        logger.info(f"LiquidityLocked {lock_id}: {amount} {token_type} from {depositor} until {lock.unlock_time}")
        return lock

    def unlock(self, lock_id: str, caller: str) -> int:
        """Release a matured lock to its depositor; returns the released amount"""
        with self.store.locked(lock_id):
            lock = self.store.get(lock_id)
            if lock is None:
                raise StateConflict(f"Lock {lock_id} does not exist or was already unlocked", reason='lock_not_found')
            if caller != lock.depositor:
                raise NotAuthorized(f"{caller} is not the depositor of lock {lock_id}", reason='not_depositor')
            now = self.clock.now()
            if now < lock.unlock_time:
                raise PolicyViolation(
                    f"Lock {lock_id} is still locked for {lock.unlock_time - now}s",
                    reason='still_locked',
                )
            self.store.pop(lock_id)
            self._held[lock.token_type] -= lock.amount

        logger.info(f"LiquidityUnlocked {lock_id}: {lock.amount} {lock.token_type} returned to {lock.depositor}")
        return lock.amount

    def get_lock(self, lock_id: str) -> Optional[Lock]:
        return self.store.get(lock_id)

    def locks_for(self, depositor: str) -> List[Lock]:
        return sorted(
            (lock for lock in self.store.values() if lock.depositor == depositor),
            key=lambda lock: lock.unlock_time,
        )

    def total_locked(self, token_type: Optional[str] = None) -> int:
        if token_type is not None:
            return self._held.get(token_type, 0)
        return sum(self._held.values())

    def time_remaining(self, lock_id: str) -> int:
        lock = self.store.get(lock_id)
        if lock is None:
            raise StateConflict(f"Lock {lock_id} does not exist", reason='lock_not_found')
        return max(0, lock.unlock_time - self.clock.now())
