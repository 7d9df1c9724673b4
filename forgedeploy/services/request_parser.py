"""
Offline request parser, used when no AI key is configured
"""

import re
from typing import Optional

from forgedeploy.models import ParsedRequest

INTENT_RE = re.compile(r'\b(create|launch|deploy|make|mint)\b', re.IGNORECASE)
TOKEN_WORD_RE = re.compile(r'\b(token|coin|memecoin)\b', re.IGNORECASE)

SYMBOL_PATTERNS = [
    re.compile(r'\$([A-Za-z0-9]{1,10})\b'),
    re.compile(r'\b(?:symbol|ticker)\b\s*(?:is|:|=)?\s*\$?([A-Za-z0-9$]{1,10})', re.IGNORECASE),
]
NAME_PATTERNS = [
    re.compile(r'\b(?:called|named)\s+"([^"]+)"', re.IGNORECASE),
    re.compile(r'\b(?:called|named)\s+([A-Za-z0-9][\w\-]*(?:\s+[A-Z][\w\-]*)*)'),
    re.compile(r'\b(?:name)\s*(?:is|:|=)\s*([A-Za-z0-9][\w\-]*)', re.IGNORECASE),
]
THEME_RE = re.compile(r'\b(?:create|launch|deploy|make|mint)\s+(?:a|an|the)?\s*(.+?)\s+(?:token|coin|memecoin)\b',
                      re.IGNORECASE)
EMOJI_RE = re.compile('[\U0001F300-\U0001FAFF☀-➿]')


def _first(patterns, text: str) -> Optional[str]:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return match.group(1).strip()
    return None


class RegexRequestParser:
    """Keyword/regex extraction with a rough confidence score"""

    async def parse(self, text: str) -> ParsedRequest:
        return self.parse_text(text)

    def parse_text(self, text: str) -> ParsedRequest:
        has_intent = bool(INTENT_RE.search(text))
        mentions_token = bool(TOKEN_WORD_RE.search(text))
        symbol = _first(SYMBOL_PATTERNS, text)
        name = _first(NAME_PATTERNS, text)

        if not (has_intent or symbol):
            return ParsedRequest(is_request=False, confidence=0)

        confidence = 0
        if has_intent:
            confidence += 30
        if mentions_token:
            confidence += 20
        if symbol:
            confidence += 20
        if name:
            confidence += 15

        # A ticker with no name: reuse the ticker
        if symbol and not name:
            name = symbol.lstrip('$')

        theme = None
        theme_match = THEME_RE.search(text)
        if theme_match:
            theme = re.sub(r'^(?:a|an|the)\b|\b(?:new|meme)\b', '', theme_match.group(1), flags=re.IGNORECASE)
            theme = re.sub(r'\s+', ' ', theme).strip() or None

        emoji_match = EMOJI_RE.search(text)

        return ParsedRequest(
            is_request=has_intent or mentions_token,
            confidence=confidence,
            name=name,
            symbol=symbol,
            theme=theme,
            emoji=emoji_match.group(0) if emoji_match else None,
        )
