"""
OpenAI chat-completions client for request parsing and token copy
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from forgedeploy.errors import CollaboratorError
from forgedeploy.models import ParsedRequest, TokenParameters

PARSE_PROMPT = """
Extract token creation information from the following message.
If the message is requesting to create a token, extract the following information:
1. Token Name (a creative name for the token)
2. Token Symbol (2-5 characters)
3. Meme Theme or Description (what concept/meme the token is about)
4. Emoji (one emoji that represents the token)

Format the response as valid JSON:
{{
    "isTokenRequest": true/false,
    "tokenName": "extracted name or null",
    "tokenSymbol": "extracted symbol or null",
    "memeTheme": "extracted theme or null",
    "emoji": "extracted emoji or null",
    "confidence": 0-100 (how confident are you this is a token creation request)
}}

If the message isn't requesting a token creation, set isTokenRequest to false and confidence to 0.

Message: "{message}"
"""

CONTENT_PROMPT = """
Create creative metadata for a meme token with these parameters:
- Name: {name}
- Symbol: {symbol}
- Theme: {theme}
- Emoji: {emoji}

Generate the following details:
1. A catchy short description (max 100 chars)
2. A funny tokenomics summary (max 200 chars)
3. Three potential hashtags for social media

Format as JSON:
{{
    "shortDescription": "...",
    "tokenomics": "...",
    "hashtags": ["#...", "#...", "#..."]
}}
"""


def extract_json_object(text: str) -> Optional[Dict[str, Any]]:
    """First JSON object in a model reply, tolerating code fences and chatter"""
    if not text:
        return None
    text = text.strip()
    try:
        obj = json.loads(text)
        return obj if isinstance(obj, dict) else None
    except json.JSONDecodeError:
        pass

    start, end = text.find('{'), text.rfind('}')
    if start == -1 or end <= start:
        return None
    try:
        obj = json.loads(text[start:end + 1])
    except json.JSONDecodeError:
        return None
    return obj if isinstance(obj, dict) else None


class OpenAIContentService:
    """Parses mentions and writes token copy via the chat-completions API"""

    def __init__(self, api_key: str, model: str = 'gpt-4-turbo',
                 base_url: str = 'https://api.openai.com/v1', timeout: float = 30.0):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.logger = logging.getLogger('forgedeploy')

    async def _chat(self, system: str, prompt: str, temperature: float) -> str:
        url = f"{self.base_url}/chat/completions"
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        body = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            "temperature": temperature,
            "max_tokens": 500,
        }

        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
                async with session.post(url, json=body, headers=headers) as response:
                    if response.status != 200:
                        text = await response.text()
                        raise CollaboratorError(f"OpenAI HTTP {response.status}: {text[:200]}", reason='ai_http_error')
                    data = await response.json()
        except asyncio.TimeoutError as e:
            raise CollaboratorError(f"OpenAI request timed out after {self.timeout:g}s", reason='ai_unavailable') from e
        except aiohttp.ClientError as e:
            raise CollaboratorError(f"OpenAI request failed: {e}", reason='ai_unavailable') from e
        except ValueError as e:
            raise CollaboratorError(f"OpenAI returned invalid JSON: {e}", reason='ai_bad_response') from e

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise CollaboratorError(f"Unexpected OpenAI response shape: {e}", reason='ai_bad_response') from e
        if not isinstance(content, str):
            raise CollaboratorError("OpenAI reply has no message content", reason='ai_bad_response')
        return content

    async def parse(self, text: str) -> ParsedRequest:
        """Any failure reads as "not a request" rather than an error"""
        try:
            content = await self._chat(
                "You are an AI assistant that extracts token creation parameters from user messages.",
                PARSE_PROMPT.format(message=text),
                temperature=0.1,
            )
        except CollaboratorError as e:
            self.logger.error(f"Error parsing token request: {e}")
            return ParsedRequest(is_request=False, confidence=0)

        data = extract_json_object(content)
        if data is None:
            self.logger.warning(f"Unparseable AI reply: {content[:200]}")
            return ParsedRequest(is_request=False, confidence=0)

        parsed = ParsedRequest.from_dict(data)
        self.logger.debug(f"Parsed token request: {parsed}")
        return parsed

    async def generate_content(self, params: TokenParameters) -> Dict[str, Any]:
        """Returns {shortDescription, tokenomics, hashtags}; raises CollaboratorError"""
        content = await self._chat(
            "You are a creative AI for generating viral meme token content.",
            CONTENT_PROMPT.format(name=params.name, symbol=params.symbol, theme=params.theme, emoji=params.emoji),
            temperature=0.8,
        )
        data = extract_json_object(content)
        if not data or not data.get('shortDescription'):
            raise CollaboratorError("AI returned no usable token content", reason='ai_bad_response')

        hashtags: List[str] = [str(tag) for tag in data.get('hashtags') or [] if tag]
        return {
            'shortDescription': str(data['shortDescription']),
            'tokenomics': str(data.get('tokenomics') or ''),
            'hashtags': hashtags,
        }
