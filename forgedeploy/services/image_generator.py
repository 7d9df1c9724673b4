"""
Token imagery: AI image generation plus a locally rendered placeholder
"""

import base64
import hashlib
import logging
from html import escape

import aiohttp

from forgedeploy.errors import CollaboratorError
from forgedeploy.models import TokenParameters

IMAGE_PROMPT = """
Create a funny meme image for a cryptocurrency token with these details:
- Name: {name}
- Symbol: {symbol}
- Theme: {theme}
- Emoji: {emoji}

Make it bright, colorful, and viral-worthy. Include the token symbol prominently.
Style should be cartoonish, with high contrast and vibrant colors. No text needed.
"""

PLACEHOLDER_SIZE = 1024


def _colors(seed: str):
    digest = hashlib.sha256(seed.encode('utf-8')).hexdigest()
    return f"#{digest[:6]}", f"#{digest[6:12]}"


def render_placeholder_image(params: TokenParameters) -> str:
    """Gradient card with $SYMBOL and the emoji, as an SVG data URI

    Same parameters always render the same image.
    """
    start, end = _colors(f"{params.symbol}:{params.name}")
    size = PLACEHOLDER_SIZE
    svg = (
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{size}" height="{size}" viewBox="0 0 {size} {size}">'
        f'<defs><linearGradient id="bg" x1="0" y1="0" x2="1" y2="1">'
        f'<stop offset="0" stop-color="{start}"/><stop offset="1" stop-color="{end}"/>'
        f'</linearGradient></defs>'
        f'<rect width="{size}" height="{size}" fill="url(#bg)"/>'
        f'<text x="50%" y="{size // 2 - 50}" font-family="Impact, Arial, sans-serif" font-size="150" '
        f'font-weight="bold" fill="white" text-anchor="middle" dominant-baseline="middle">'
        f'${escape(params.symbol)}</text>'
        f'<text x="50%" y="{size // 2 + 150}" font-size="220" text-anchor="middle" '
        f'dominant-baseline="middle">{escape(params.emoji)}</text>'
        f'</svg>'
    )
    encoded = base64.b64encode(svg.encode('utf-8')).decode('ascii')
    return f"data:image/svg+xml;base64,{encoded}"


class ImageGenerationService:
    """Static token image from the OpenAI images endpoint"""

    def __init__(self, api_key: str, base_url: str = 'https://api.openai.com/v1',
                 size: str = '1024x1024', timeout: float = 60.0):
        self.api_key = api_key
        self.base_url = base_url.rstrip('/')
        self.size = size
        self.timeout = timeout
        self.logger = logging.getLogger('forgedeploy')

    async def generate(self, params: TokenParameters) -> dict:
        """Returns {staticImageRef, animatedImageRef}; raises CollaboratorError"""
        url = f"{self.base_url}/images/generations"
        headers = {"Authorization": f"Bearer {self.api_key}"}
        body = {
            "prompt": IMAGE_PROMPT.format(
                name=params.name, symbol=params.symbol, theme=params.theme, emoji=params.emoji
            ),
            "n": 1,
            "size": self.size,
            "response_format": "url",
        }

        try:
            async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
                async with session.post(url, json=body, headers=headers) as response:
                    if response.status != 200:
                        text = await response.text()
                        raise CollaboratorError(f"Image API HTTP {response.status}: {text[:200]}",
                                                reason='image_http_error')
                    data = await response.json()
        except aiohttp.ClientError as e:
            raise CollaboratorError(f"Image request failed: {e}", reason='image_unavailable') from e

        try:
            image_url = data["data"][0]["url"]
        except (KeyError, IndexError, TypeError) as e:
            raise CollaboratorError(f"Unexpected image API response: {e}", reason='image_bad_response') from e

        self.logger.info(f"Static image generated for ${params.symbol}")
        # Animated variants are not produced by this service
        return {'staticImageRef': image_url, 'animatedImageRef': None}
