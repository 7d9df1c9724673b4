"""
Fee router: splits trading fees between the protocol and each token's creator
"""

import logging
from typing import Dict, Optional

from forgedeploy.database import KeyedStateStore
from forgedeploy.errors import NotAuthorized, StateConflict, ValidationError
from forgedeploy.models import FeeSplit

logger = logging.getLogger(__name__)

# protocol_bps + creator_bps must add up to this (10% fee budget)
FEE_BUDGET_BPS = 1000
PROTOCOL = 'protocol'


class FeeRouter:
    """Balances are kept per principal: `protocol` or `creator:<token_id>`"""

    def __init__(self, admin: str, protocol_bps: int = 200, creator_bps: int = 800,
                 store: Optional[KeyedStateStore] = None):
        if protocol_bps < 0 or creator_bps < 0 or protocol_bps + creator_bps == 0:
            raise ValidationError("Fee split needs a positive total", reason='invalid_split')
        self.admin = admin
        self.protocol_bps = protocol_bps
        self.creator_bps = creator_bps
        self.store = store if store is not None else KeyedStateStore('fees')
        self._creators: Dict[str, str] = {}

    def register_token(self, token_id: str, creator: str) -> None:
        """Create the fee config for a token"""
        key = _creator_key(token_id)
        with self.store.locked(key):
            if token_id in self._creators:
                raise StateConflict(f"Fee config already exists for {token_id}", reason='fee_config_exists')
            self._creators[token_id] = creator
            self.store.put(key, 0)
        logger.info(f"Fee config created for {token_id} (creator {creator})")

    def split(self, fee: int) -> FeeSplit:
        """Truncation always lands on the creator side"""
        if fee < 0:
            raise ValidationError("Fee cannot be negative", reason='invalid_fee')
        base = self.protocol_bps + self.creator_bps
        protocol_amount = fee * self.protocol_bps // base
        return FeeSplit(protocol_amount=protocol_amount, creator_amount=fee - protocol_amount)

    def collect_fees(self, token_id: str, fee: int) -> FeeSplit:
        if token_id not in self._creators:
            raise StateConflict(f"No fee config for {token_id}", reason='unknown_token')
        fee_split = self.split(fee)
        with self.store.locked(PROTOCOL):
            self.store.put(PROTOCOL, self.store.get(PROTOCOL, 0) + fee_split.protocol_amount)
        key = _creator_key(token_id)
        with self.store.locked(key):
            self.store.put(key, self.store.get(key, 0) + fee_split.creator_amount)
        logger.info(
            f"Collected {fee} in fees on {token_id}: "
            f"{fee_split.protocol_amount} protocol / {fee_split.creator_amount} creator"
        )
        return fee_split

    def withdraw(self, caller: str, token_id: Optional[str] = None) -> int:
        """Drain the caller's whole balance

        Without `token_id` the caller must be the admin and the protocol
        balance is withdrawn; with it, the caller must be that token's creator.
        """
        if token_id is None:
            if caller != self.admin:
                raise NotAuthorized(f"{caller} is not the fee admin", reason='not_admin')
            key = PROTOCOL
        else:
            creator = self._creators.get(token_id)
            if creator is None:
                raise StateConflict(f"No fee config for {token_id}", reason='unknown_token')
            if caller != creator:
                raise NotAuthorized(f"{caller} is not the creator of {token_id}", reason='not_creator')
            key = _creator_key(token_id)

        with self.store.locked(key):
            amount = self.store.get(key, 0)
            if amount <= 0:
                raise StateConflict(f"Nothing to withdraw for {key}", reason='zero_balance')
            self.store.put(key, 0)

        logger.info(f"{caller} withdrew {amount} from {key}")
        return amount

    def update_split(self, caller: str, protocol_bps: int, creator_bps: int) -> None:
        if caller != self.admin:
            raise NotAuthorized(f"{caller} is not the fee admin", reason='not_admin')
        if protocol_bps < 0 or creator_bps < 0 or protocol_bps + creator_bps != FEE_BUDGET_BPS:
            raise ValidationError(
                f"protocol_bps + creator_bps must equal {FEE_BUDGET_BPS} (got {protocol_bps} + {creator_bps})",
                reason='invalid_split',
            )
        self.protocol_bps = protocol_bps
        self.creator_bps = creator_bps
        logger.info(f"Fee split updated: protocol {protocol_bps} bps, creator {creator_bps} bps")

    def balance_of(self, token_id: Optional[str] = None) -> int:
        key = PROTOCOL if token_id is None else _creator_key(token_id)
        return self.store.get(key, 0)

    def creator_of(self, token_id: str) -> Optional[str]:
        return self._creators.get(token_id)

    def get_split(self) -> Dict[str, int]:
        return {'protocol_bps': self.protocol_bps, 'creator_bps': self.creator_bps}


def _creator_key(token_id: str) -> str:
    return f"creator:{token_id}"
