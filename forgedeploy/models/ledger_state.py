"""
State records owned by the anti-bot engine, the lock escrow and the fee router
"""

from dataclasses import dataclass, field
from typing import Dict, Set


@dataclass
class BuyRecord:
    total_bought: int = 0
    last_buy_time: int = 0


@dataclass
class ProtectionConfig:
    """Anti-bot state for one token. Never deleted."""
    token_id: str
    owner: str
    trading_enabled: bool
    enable_time: int
    cooldown_period: int
    max_buy_percent_bps: int
    whitelist: Set[str] = field(default_factory=set)
    blacklist: Set[str] = field(default_factory=set)
    buy_tracking: Dict[str, BuyRecord] = field(default_factory=dict)


@dataclass(frozen=True)
class Lock:
    """Escrowed liquidity-provider shares"""
    lock_id: str
    token_type: str
    depositor: str
    amount: int
    unlock_time: int
    locked_at: int


@dataclass(frozen=True)
class FeeSplit:
    protocol_amount: int
    creator_amount: int

    @property
    def total(self) -> int:
        return self.protocol_amount + self.creator_amount


@dataclass
class RateState:
    """Admission window for one actor"""
    window_start: int
    request_count: int
    cooldown_until: int = 0
