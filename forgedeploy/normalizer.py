"""
Request normalization: parsed fields -> canonical TokenParameters

Pure functions, no I/O.
"""

import hashlib
import re
from typing import Optional

from forgedeploy.errors import ValidationError
from forgedeploy.models import ParsedRequest, TokenParameters

CONFIDENCE_THRESHOLD = 70
SYMBOL_MIN_LENGTH = 2
SYMBOL_MAX_LENGTH = 5
DEFAULT_THEME = "Generic meme token"
DEFAULT_EMOJIS = ("🚀", "🌕", "💎", "🔥", "🦍", "🐶", "🐱", "🤖")


def normalize_symbol(raw: str) -> str:
    """Trim, uppercase and keep only A-Z / 0-9"""
    return re.sub(r'[^A-Z0-9]', '', raw.strip().upper())


def normalize_name(raw: str) -> str:
    """Trim and strip punctuation, collapsing leftover whitespace"""
    cleaned = re.sub(r'[^\w\s]|_', '', raw.strip())
    return re.sub(r'\s+', ' ', cleaned).strip()


def pick_default_emoji(seed: str) -> str:
    """Stable pick from the default pool: same seed, same emoji"""
    digest = hashlib.sha256(seed.encode('utf-8')).digest()
    return DEFAULT_EMOJIS[digest[0] % len(DEFAULT_EMOJIS)]


def normalize(parsed: ParsedRequest, confidence_threshold: int = CONFIDENCE_THRESHOLD) -> TokenParameters:
    """Validate parsed fields and build TokenParameters

    Raises:
        ValidationError with reason one of not_a_request, low_confidence,
        missing_name, missing_symbol, symbol_length
    """
    if not parsed.is_request:
        raise ValidationError("Not a token request", reason='not_a_request')

    if parsed.confidence < confidence_threshold:
        raise ValidationError(
            f"Low confidence request ({parsed.confidence} < {confidence_threshold})",
            reason='low_confidence',
        )

    name = normalize_name(parsed.name) if parsed.name else ''
    if not name:
        raise ValidationError("Missing token name", reason='missing_name')

    if not parsed.symbol or not parsed.symbol.strip():
        raise ValidationError("Missing token symbol", reason='missing_symbol')

    symbol = normalize_symbol(parsed.symbol)
    if not SYMBOL_MIN_LENGTH <= len(symbol) <= SYMBOL_MAX_LENGTH:
        raise ValidationError(
            f"Token symbol must be {SYMBOL_MIN_LENGTH}-{SYMBOL_MAX_LENGTH} characters (got '{symbol}')",
            reason='symbol_length',
        )

    theme = parsed.theme.strip() if parsed.theme and parsed.theme.strip() else DEFAULT_THEME
    emoji = _clean_emoji(parsed.emoji) or pick_default_emoji(f"{symbol}:{name}")

    return TokenParameters(name=name, symbol=symbol, theme=theme, emoji=emoji)


def _clean_emoji(raw: Optional[str]) -> Optional[str]:
    if not raw:
        return None
    raw = raw.strip()
    return raw or None
