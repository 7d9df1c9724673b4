"""
Metadata & asset assembly

Turns TokenParameters into a complete TokenMetadata record. Content and
image generation failures never fail the deployment: templated copy and a
rendered placeholder image stand in for them.
"""

import asyncio
import hashlib
import json
import logging
from dataclasses import replace
from typing import Dict, List, Optional, Sequence

from forgedeploy.models import TokenMetadata, TokenParameters
from forgedeploy.services.image_generator import render_placeholder_image

logger = logging.getLogger(__name__)

DEFAULT_HASHTAGS = ('#SuiMeme', '#SuiForge')


def fallback_content(params: TokenParameters, protocol_bps: int = 200, creator_bps: int = 800,
                     lock_period: str = '30 days', brand_hashtags: Sequence[str] = DEFAULT_HASHTAGS) -> Dict:
    """Deterministic copy used when the content service is missing or fails"""
    base = protocol_bps + creator_bps
    creator_pct = creator_bps * 100 // base
    protocol_pct = 100 - creator_pct
    return {
        'shortDescription': f"The next big {params.theme} meme token!",
        'tokenomics': (
            f"1% fee: {creator_pct}% to creator, {protocol_pct}% to protocol. "
            f"Initial LP locked for {lock_period}."
        ),
        'hashtags': [f"#{params.symbol}", *brand_hashtags],
    }


def metadata_digest(metadata: TokenMetadata) -> str:
    """Content reference for metadata that was not pinned"""
    encoded = json.dumps(metadata.to_dict(), sort_keys=True, ensure_ascii=False).encode('utf-8')
    return 'sha256:' + hashlib.sha256(encoded).hexdigest()


class MetadataAssembler:

    def __init__(self, content_service=None, image_service=None, ipfs_service=None,
                 protocol_bps: int = 200, creator_bps: int = 800, lock_period: str = '30 days',
                 brand_hashtags: Sequence[str] = DEFAULT_HASHTAGS,
                 content_timeout: float = 30.0, image_timeout: float = 60.0):
        self.content_service = content_service
        self.image_service = image_service
        self.ipfs_service = ipfs_service
        self.protocol_bps = protocol_bps
        self.creator_bps = creator_bps
        self.lock_period = lock_period
        self.brand_hashtags = list(brand_hashtags)
        self.content_timeout = content_timeout
        self.image_timeout = image_timeout

    @classmethod
    def from_settings(cls, settings, content_service=None, image_service=None, ipfs_service=None):
        return cls(
            content_service=content_service,
            image_service=image_service,
            ipfs_service=ipfs_service,
            protocol_bps=settings.protocol_fee_bps,
            creator_bps=settings.creator_fee_bps,
            lock_period=settings.lock_period,
            brand_hashtags=settings.brand_hashtags,
            content_timeout=settings.content_timeout,
            image_timeout=settings.image_timeout,
        )

    async def assemble(self, params: TokenParameters) -> TokenMetadata:
        content, content_fallback = await self._generate_content(params)
        image_ref, animated_ref, image_fallback = await self._generate_image(params)

        params = replace(
            params,
            short_description=content['shortDescription'],
            image_ref=image_ref,
            animated_ref=animated_ref,
        )
        metadata = TokenMetadata(
            params=params,
            description=content['shortDescription'],
            tokenomics=content['tokenomics'],
            hashtags=self._hashtags(params, content.get('hashtags')),
            image_ref=image_ref,
            animated_ref=animated_ref,
            content_fallback=content_fallback,
            image_fallback=image_fallback,
        )

        if self.ipfs_service is not None:
            metadata.metadata_uri = await asyncio.to_thread(self.ipfs_service.pin_json, metadata.to_dict())
            if metadata.metadata_uri is None:
                logger.warning(f"IPFS pin failed for ${params.symbol}; using inline metadata")

        logger.info(
            f"Metadata ready for ${params.symbol}"
            f"{' (fallback content)' if content_fallback else ''}"
            f"{' (placeholder image)' if image_fallback else ''}"
        )
        return metadata

    async def _generate_content(self, params: TokenParameters):
        defaults = fallback_content(params, self.protocol_bps, self.creator_bps, self.lock_period, self.brand_hashtags)
        if self.content_service is None:
            return defaults, True

        try:
            content = await asyncio.wait_for(self.content_service.generate_content(params), self.content_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Content generation timed out for ${params.symbol}, using fallback")
            return defaults, True
        except Exception as e:
            logger.warning(f"Content generation failed for ${params.symbol}, using fallback: {e}")
            return defaults, True

        if not content or not content.get('shortDescription'):
            return defaults, True
        if not content.get('tokenomics'):
            content = {**content, 'tokenomics': defaults['tokenomics']}
        return content, False

    async def _generate_image(self, params: TokenParameters):
        if self.image_service is not None:
            try:
                refs = await asyncio.wait_for(self.image_service.generate(params), self.image_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Image generation timed out for ${params.symbol}")
                refs = None
            except Exception as e:
                logger.warning(f"Image generation failed for ${params.symbol}: {e}")
                refs = None

            if refs and refs.get('staticImageRef'):
                image_ref = refs['staticImageRef']
                if self.ipfs_service is not None:
                    pinned = await self.ipfs_service.pin_image_url(image_ref, name=f"{params.symbol.lower()}_static")
                    image_ref = pinned or image_ref
                return image_ref, refs.get('animatedImageRef'), False

        return render_placeholder_image(params), None, True

    def _hashtags(self, params: TokenParameters, generated: Optional[List[str]]) -> List[str]:
        tags = [tag if tag.startswith('#') else f"#{tag}" for tag in (generated or []) if tag]
        if not tags:
            tags = [f"#{params.symbol}", *self.brand_hashtags]
        return tags
