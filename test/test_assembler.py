import base64

import pytest

from forgedeploy.assembler import MetadataAssembler, fallback_content, metadata_digest
from forgedeploy.services import render_placeholder_image

from stubs import FailingService, HangingService, StubContentService, StubImageService, StubIPFS


@pytest.mark.asyncio
async def test_uses_generated_content_and_image(params):
    content = StubContentService()
    metadata = await MetadataAssembler(content, StubImageService()).assemble(params)

    assert content.calls == [params]
    assert metadata.description == 'Cats riding rockets to the moon'
    assert metadata.tokenomics == '1% fee, LP locked'
    assert metadata.hashtags == ['#CMON', '#CatMoon', '#SuiMeme']
    assert metadata.image_ref == 'https://images.example/cmon.png'
    assert metadata.params.short_description == metadata.description
    assert not metadata.content_fallback
    assert not metadata.image_fallback
    assert metadata.metadata_uri is None


@pytest.mark.asyncio
async def test_without_collaborators_everything_falls_back(params):
    metadata = await MetadataAssembler().assemble(params)

    assert metadata.description == 'The next big rocket cat meme token!'
    assert metadata.tokenomics == '1% fee: 80% to creator, 20% to protocol. Initial LP locked for 30 days.'
    assert metadata.hashtags == ['#CMON', '#SuiMeme', '#SuiForge']
    assert metadata.image_ref.startswith('data:image/svg+xml;base64,')
    assert metadata.animated_ref is None
    assert metadata.content_fallback and metadata.image_fallback


@pytest.mark.asyncio
async def test_collaborator_errors_are_not_fatal(params):
    failing = FailingService()
    metadata = await MetadataAssembler(failing, failing).assemble(params)
    assert metadata.content_fallback and metadata.image_fallback
    assert metadata.image_ref == render_placeholder_image(params)


@pytest.mark.asyncio
async def test_hanging_collaborators_time_out_into_fallbacks(params):
    hanging = HangingService()
    assembler = MetadataAssembler(hanging, hanging, content_timeout=0.05, image_timeout=0.05)
    metadata = await assembler.assemble(params)
    assert metadata.content_fallback and metadata.image_fallback


@pytest.mark.asyncio
async def test_incomplete_content_is_topped_up(params):
    content = StubContentService({'shortDescription': 'Meow to the moon', 'hashtags': ['CMON']})
    metadata = await MetadataAssembler(content).assemble(params)
    assert metadata.description == 'Meow to the moon'
    assert metadata.tokenomics.startswith('1% fee')
    assert metadata.hashtags == ['#CMON']


@pytest.mark.asyncio
async def test_pins_image_and_metadata_when_ipfs_is_available(params):
    ipfs = StubIPFS()
    metadata = await MetadataAssembler(StubContentService(), StubImageService(), ipfs).assemble(params)
    assert metadata.image_ref == 'ipfs://image-cmon_static'
    assert metadata.metadata_uri == 'ipfs://meta-cmon'
    assert ipfs.pinned[0]['image'] == 'ipfs://image-cmon_static'


def test_fallback_tokenomics_follow_the_fee_split(params):
    content = fallback_content(params, protocol_bps=300, creator_bps=700, lock_period='90 days')
    assert content['tokenomics'] == '1% fee: 70% to creator, 30% to protocol. Initial LP locked for 90 days.'


def test_placeholder_is_deterministic_and_shows_the_symbol(params):
    first = render_placeholder_image(params)
    assert first == render_placeholder_image(params)
    svg = base64.b64decode(first.split(',', 1)[1]).decode('utf-8')
    assert '$CMON' in svg
    assert params.emoji in svg


@pytest.mark.asyncio
async def test_metadata_digest_is_stable(params):
    assembler = MetadataAssembler()
    first = await assembler.assemble(params)
    second = await assembler.assemble(params)
    assert metadata_digest(first) == metadata_digest(second)
    assert metadata_digest(first).startswith('sha256:')
