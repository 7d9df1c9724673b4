"""
Deployment request, token parameter and deployment record models
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from forgedeploy.errors import StateConflict


@dataclass(frozen=True)
class DeploymentRequest:
    """An inbound token request. Immutable, consumed once."""
    source: str  # twitter, telegram, farcaster, api
    actor_id: str
    raw_text: str
    received_at: int
    event_id: str  # id of the mention/message within its source
    request_id: str = field(default_factory=lambda: uuid.uuid4().hex)


@dataclass
class ParsedRequest:
    """Structured output of the parsing collaborator"""
    is_request: bool
    confidence: int
    name: Optional[str] = None
    symbol: Optional[str] = None
    theme: Optional[str] = None
    emoji: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ParsedRequest':
        """Accepts both the AI JSON shape (isTokenRequest, tokenName...) and snake_case"""
        def pick(*keys):
            for key in keys:
                if data.get(key) is not None:
                    return data[key]
            return None

        def text(*keys):
            value = pick(*keys)
            return None if value is None else str(value)

        try:
            confidence = int(pick('confidence') or 0)
        except (TypeError, ValueError):
            confidence = 0

        is_request = pick('isTokenRequest', 'is_request')
        if isinstance(is_request, str):
            is_request = is_request.strip().lower() == 'true'

        return cls(
            is_request=bool(is_request),
            confidence=confidence,
            name=text('tokenName', 'name'),
            symbol=text('tokenSymbol', 'symbol'),
            theme=text('memeTheme', 'theme'),
            emoji=text('emoji'),
        )


@dataclass
class TokenParameters:
    """Validated, canonical token parameters"""
    name: str
    symbol: str
    theme: str
    emoji: str
    short_description: Optional[str] = None
    image_ref: Optional[str] = None
    animated_ref: Optional[str] = None


@dataclass
class TokenMetadata:
    """Complete metadata record sent to the token factory"""
    params: TokenParameters
    description: str
    tokenomics: str
    hashtags: List[str]
    image_ref: Optional[str] = None
    animated_ref: Optional[str] = None
    metadata_uri: Optional[str] = None
    content_fallback: bool = False
    image_fallback: bool = False

    @property
    def name(self) -> str:
        return self.params.name

    @property
    def symbol(self) -> str:
        return self.params.symbol

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.params.name,
            'symbol': self.params.symbol,
            'theme': self.params.theme,
            'emoji': self.params.emoji,
            'description': self.description,
            'tokenomics': self.tokenomics,
            'hashtags': list(self.hashtags),
            'image': self.image_ref or '',
            'animation': self.animated_ref or '',
        }


class DeploymentStatus(str, Enum):
    PENDING = 'pending'
    METADATA_READY = 'metadata_ready'
    DEPLOYED = 'deployed'
    PROTECTED = 'protected'
    FEE_CONFIGURED = 'fee_configured'
    LIQUIDITY_PROVIDED = 'liquidity_provided'
    LIQUIDITY_LOCKED = 'liquidity_locked'
    FAILED = 'failed'

    @property
    def is_terminal(self) -> bool:
        return self in (DeploymentStatus.LIQUIDITY_LOCKED, DeploymentStatus.FAILED)


# Success path, in the only order it may be walked
SUCCESS_PATH = [
    DeploymentStatus.PENDING,
    DeploymentStatus.METADATA_READY,
    DeploymentStatus.DEPLOYED,
    DeploymentStatus.PROTECTED,
    DeploymentStatus.FEE_CONFIGURED,
    DeploymentStatus.LIQUIDITY_PROVIDED,
    DeploymentStatus.LIQUIDITY_LOCKED,
]


@dataclass
class StepRef:
    """One recorded transition"""
    step: str
    status: DeploymentStatus
    tx_ref: Optional[str]
    at: int


@dataclass
class DeploymentRecord:
    """Single source of truth for one request's progress"""
    request_id: str
    status: DeploymentStatus = DeploymentStatus.PENDING
    token_id: Optional[str] = None
    last_error: Optional[str] = None
    failed_step: Optional[str] = None
    transaction_refs: List[StepRef] = field(default_factory=list)
    artifacts: Dict[str, Any] = field(default_factory=dict)

    def advance(self, step: str, to_status: DeploymentStatus, tx_ref: Optional[str], at: int) -> None:
        """Move one step along the success path"""
        if self.status.is_terminal:
            raise StateConflict(
                f"Deployment {self.request_id} is already {self.status.value}",
                reason='terminal_state',
            )
        expected = SUCCESS_PATH[SUCCESS_PATH.index(self.status) + 1]
        if to_status != expected:
            raise StateConflict(
                f"Illegal transition {self.status.value} -> {to_status.value} (expected {expected.value})",
                reason='illegal_transition',
            )
        self.status = to_status
        self.transaction_refs.append(StepRef(step, to_status, tx_ref, at))

    def fail(self, step: str, error: str, at: int) -> None:
        if self.status.is_terminal:
            raise StateConflict(
                f"Deployment {self.request_id} is already {self.status.value}",
                reason='terminal_state',
            )
        self.status = DeploymentStatus.FAILED
        self.failed_step = step
        self.last_error = error
        self.transaction_refs.append(StepRef(step, DeploymentStatus.FAILED, None, at))

    def tx_ref_for(self, step: str) -> Optional[str]:
        for ref in self.transaction_refs:
            if ref.step == step:
                return ref.tx_ref
        return None


@dataclass
class DeploymentResult:
    """What the front-end that received the request gets back"""
    success: bool
    request_id: Optional[str] = None
    token_id: Optional[str] = None
    tx_ref: Optional[str] = None
    reason: Optional[str] = None
    step: Optional[str] = None
    pool_id: Optional[str] = None
    lock_id: Optional[str] = None
    unlock_time: Optional[int] = None
    retry_after: Optional[int] = None
    metadata: Optional[TokenMetadata] = None

    @classmethod
    def rejected(cls, reason: str, request_id: Optional[str] = None,
                 retry_after: Optional[int] = None) -> 'DeploymentResult':
        return cls(success=False, request_id=request_id, reason=reason, retry_after=retry_after)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'requestId': self.request_id,
            'tokenId': self.token_id,
            'txRef': self.tx_ref,
            'reason': self.reason,
            'step': self.step,
            'poolId': self.pool_id,
            'lockId': self.lock_id,
            'unlockTime': self.unlock_time,
            'retryAfter': self.retry_after,
        }
