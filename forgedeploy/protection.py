"""
Anti-bot protection engine

One state machine per token:

    uninitialized -> created (trading disabled) -> trading enabled

Trading activation is lazy: the first buy check at or after `enable_time`
performs the transition. Once enabled, trading is never disabled again.
"""

import copy
import logging
from dataclasses import dataclass
from typing import Optional

from forgedeploy.database import KeyedStateStore
from forgedeploy.errors import NotAuthorized, StateConflict, ValidationError
from forgedeploy.models import BuyRecord, ProtectionConfig

logger = logging.getLogger(__name__)

BPS_DENOMINATOR = 10_000


@dataclass(frozen=True)
class BuyCheck:
    """Outcome of a buy check, including whether it opened trading"""
    allowed: bool
    reason: str
    trading_activated: bool = False


class ProtectionEngine:
    """Owns every token's ProtectionConfig"""

    def __init__(self, clock, store: Optional[KeyedStateStore] = None):
        self.clock = clock
        self.store = store if store is not None else KeyedStateStore('protection')

    def create_protection(self, token_id: str, owner: str, cooldown_period: int,
                          max_buy_percent_bps: int, enable_delay: int) -> ProtectionConfig:
        _validate_cooldown(cooldown_period)
        _validate_max_buy(max_buy_percent_bps)
        if enable_delay < 0:
            raise ValidationError("enable_delay cannot be negative", reason='invalid_enable_delay')

        with self.store.locked(token_id):
            if token_id in self.store:
                raise StateConflict(f"Protection already exists for {token_id}", reason='protection_exists')

            config = ProtectionConfig(
                token_id=token_id,
                owner=owner,
                trading_enabled=False,
                enable_time=self.clock.now() + enable_delay,
                cooldown_period=cooldown_period,
                max_buy_percent_bps=max_buy_percent_bps,
                whitelist={owner},
            )
            self.store.put(token_id, config)

        logger.info(
            f"Protection created for {token_id}: trading opens at {config.enable_time}, "
            f"cooldown {cooldown_period}s, max buy {max_buy_percent_bps} bps"
        )
        return copy.deepcopy(config)

    def evaluate_buy(self, token_id: str, buyer: str, amount: int, total_supply: int,
                     now: Optional[int] = None) -> BuyCheck:
        """Run the buy rules in order and record the buy when it passes

        May transition the token to trading-enabled (see module docstring).
        """
        if now is None:
            now = self.clock.now()

        with self.store.locked(token_id):
            config = self._require(token_id)

            if buyer in config.whitelist:
                return BuyCheck(True, 'whitelisted')

            if buyer in config.blacklist:
                return BuyCheck(False, 'blacklisted')

            activated = self._maybe_enable_trading(config, now)

            if not config.trading_enabled:
                return BuyCheck(False, 'trading_disabled')

            max_buy = total_supply * config.max_buy_percent_bps // BPS_DENOMINATOR
            if amount > max_buy:
                return BuyCheck(False, 'max_buy_exceeded', activated)

            record = config.buy_tracking.get(buyer)
            if record is not None and now - record.last_buy_time < config.cooldown_period:
                return BuyCheck(False, 'cooldown_active', activated)

            if record is None:
                record = BuyRecord()
                config.buy_tracking[buyer] = record
            record.total_bought += amount
            record.last_buy_time = now
            return BuyCheck(True, 'ok', activated)

    def check_can_buy(self, token_id: str, buyer: str, amount: int, total_supply: int,
                      now: Optional[int] = None) -> bool:
        check = self.evaluate_buy(token_id, buyer, amount, total_supply, now)
        if not check.allowed:
            logger.info(f"Buy rejected on {token_id} for {buyer}: {check.reason}")
        return check.allowed

    def _maybe_enable_trading(self, config: ProtectionConfig, now: int) -> bool:
        """created -> trading enabled, once enable_time is reached"""
        if config.trading_enabled or now < config.enable_time:
            return False
        config.trading_enabled = True
        logger.info(f"Trading enabled for {config.token_id} at {now} (enable time {config.enable_time})")
        return True

    # Owner-only list management. Redundant changes are errors, not no-ops.

    def add_to_whitelist(self, token_id: str, caller: str, address: str) -> None:
        with self.store.locked(token_id):
            config = self._require_owner(token_id, caller)
            if address in config.whitelist:
                raise StateConflict(f"{address} is already whitelisted on {token_id}", reason='already_whitelisted')
            config.whitelist.add(address)
        logger.info(f"Whitelisted {address} on {token_id}")

    def remove_from_whitelist(self, token_id: str, caller: str, address: str) -> None:
        with self.store.locked(token_id):
            config = self._require_owner(token_id, caller)
            if address not in config.whitelist:
                raise StateConflict(f"{address} is not whitelisted on {token_id}", reason='not_whitelisted')
            config.whitelist.remove(address)
        logger.info(f"Removed {address} from whitelist on {token_id}")

    def add_to_blacklist(self, token_id: str, caller: str, address: str) -> None:
        with self.store.locked(token_id):
            config = self._require_owner(token_id, caller)
            if address in config.blacklist:
                raise StateConflict(f"{address} is already blacklisted on {token_id}", reason='already_blacklisted')
            config.blacklist.add(address)
        logger.info(f"Blacklisted {address} on {token_id}")

    def remove_from_blacklist(self, token_id: str, caller: str, address: str) -> None:
        with self.store.locked(token_id):
            config = self._require_owner(token_id, caller)
            if address not in config.blacklist:
                raise StateConflict(f"{address} is not blacklisted on {token_id}", reason='not_blacklisted')
            config.blacklist.remove(address)
        logger.info(f"Removed {address} from blacklist on {token_id}")

    def set_max_buy_percent(self, token_id: str, caller: str, max_buy_percent_bps: int) -> None:
        """Applies to later checks only"""
        _validate_max_buy(max_buy_percent_bps)
        with self.store.locked(token_id):
            config = self._require_owner(token_id, caller)
            config.max_buy_percent_bps = max_buy_percent_bps
        logger.info(f"Max buy on {token_id} set to {max_buy_percent_bps} bps")

    def set_cooldown_period(self, token_id: str, caller: str, cooldown_period: int) -> None:
        _validate_cooldown(cooldown_period)
        with self.store.locked(token_id):
            config = self._require_owner(token_id, caller)
            config.cooldown_period = cooldown_period
        logger.info(f"Cooldown on {token_id} set to {cooldown_period}s")

    # Read-only queries

    def get_protection(self, token_id: str) -> Optional[ProtectionConfig]:
        """Snapshot copy; mutating it has no effect on the engine"""
        config = self.store.get(token_id)
        return copy.deepcopy(config) if config is not None else None

    def is_trading_enabled(self, token_id: str) -> bool:
        return self._require(token_id).trading_enabled

    def get_buy_record(self, token_id: str, buyer: str) -> Optional[BuyRecord]:
        record = self._require(token_id).buy_tracking.get(buyer)
        return copy.copy(record) if record is not None else None

    def _require(self, token_id: str) -> ProtectionConfig:
        config = self.store.get(token_id)
        if config is None:
            raise StateConflict(f"No protection configured for {token_id}", reason='unknown_token')
        return config

    def _require_owner(self, token_id: str, caller: str) -> ProtectionConfig:
        config = self._require(token_id)
        if caller != config.owner:
            raise NotAuthorized(f"{caller} is not the owner of {token_id}", reason='not_owner')
        return config


def _validate_max_buy(max_buy_percent_bps: int) -> None:
    if not 0 < max_buy_percent_bps <= BPS_DENOMINATOR:
        raise ValidationError(
            f"max_buy_percent_bps must be within 1-{BPS_DENOMINATOR} (got {max_buy_percent_bps})",
            reason='invalid_max_buy',
        )


def _validate_cooldown(cooldown_period: int) -> None:
    if cooldown_period < 0:
        raise ValidationError("cooldown_period cannot be negative", reason='invalid_cooldown')
