import asyncio

import pytest

from forgedeploy.errors import StateConflict
from forgedeploy.models import SUCCESS_PATH, DeploymentStatus
from forgedeploy.orchestrator import STEPS, DeploymentOrchestrator

from stubs import BrokenAssembler, FlakyLedger, GatedLedger, SilentLedger


@pytest.mark.asyncio
async def test_successful_deployment_walks_every_state(orchestrator, params, escrow, clock):
    record = await orchestrator.deploy('req-1', params)

    assert record.status == DeploymentStatus.LIQUIDITY_LOCKED
    assert record.token_id is not None
    assert [ref.status for ref in record.transaction_refs] == SUCCESS_PATH[1:]
    assert [ref.step for ref in record.transaction_refs] == STEPS
    assert all(ref.tx_ref for ref in record.transaction_refs)

    assert record.artifacts['unlock_time'] == clock.now() + 30 * 86400
    assert escrow.total_locked() == record.artifacts['lp_amount']
    assert escrow.get_lock(record.artifacts['lock_id']).depositor == 'forge-deployer'


@pytest.mark.asyncio
async def test_deployment_sets_up_protection_and_fees(orchestrator, params, protection, fees, ledger):
    record = await orchestrator.deploy('req-1', params)
    config = protection.get_protection(record.token_id)
    assert config.owner == ledger.sender
    assert config.max_buy_percent_bps == 500
    assert fees.creator_of(record.token_id) == ledger.sender
    assert ledger.get_token(record.token_id)['name'] == 'CatMoon'


@pytest.mark.asyncio
async def test_transitions_are_persisted(orchestrator, params, db):
    await orchestrator.deploy('req-1', params)
    steps = db.get_steps('req-1')
    assert [row['step'] for row in steps] == STEPS
    assert steps[-1]['status'] == 'liquidity_locked'


@pytest.mark.asyncio
@pytest.mark.parametrize('target, step, last_good', [
    ('token_factory::create_token', 'create_token', DeploymentStatus.METADATA_READY),
    ('anti_bot::create_protection', 'protection', DeploymentStatus.DEPLOYED),
    ('fee_distributor::create_token_fee_config', 'fee_config', DeploymentStatus.PROTECTED),
    ('dex::provide_liquidity', 'liquidity', DeploymentStatus.FEE_CONFIGURED),
    ('liquidity_locker::lock_liquidity', 'lock', DeploymentStatus.LIQUIDITY_PROVIDED),
])
async def test_step_failure_fails_the_deployment(ledger, assembler, clock, params, target, step, last_good):
    orchestrator = DeploymentOrchestrator(FlakyLedger(ledger, target), assembler, clock)
    record = await orchestrator.deploy('req-1', params)

    assert record.status == DeploymentStatus.FAILED
    assert record.failed_step == step
    assert target in record.last_error
    assert record.artifacts['failure_reason'] == 'tx_reverted'
    # everything before the failure is kept
    assert record.transaction_refs[-2].status == last_good
    assert all(ref.tx_ref for ref in record.transaction_refs[:-1])


@pytest.mark.asyncio
async def test_no_rollback_after_token_creation(ledger, assembler, clock, params):
    orchestrator = DeploymentOrchestrator(FlakyLedger(ledger, 'liquidity_locker::lock_liquidity'), assembler, clock)
    record = await orchestrator.deploy('req-1', params)

    assert record.status == DeploymentStatus.FAILED
    assert ledger.get_token(record.token_id) is not None
    assert ledger.get_pool_for(record.token_id) is not None
    assert record.artifacts['pool_id'] == ledger.get_pool_for(record.token_id)['pool_id']


@pytest.mark.asyncio
async def test_metadata_failure(ledger, clock, params):
    orchestrator = DeploymentOrchestrator(ledger, BrokenAssembler(), clock)
    record = await orchestrator.deploy('req-1', params)
    assert record.failed_step == 'metadata'
    assert record.last_error == 'assembler exploded'
    assert record.token_id is None
    assert ledger.tokens == {}


@pytest.mark.asyncio
async def test_hung_step_times_out(ledger, assembler, clock, params):
    hanging = FlakyLedger(ledger, 'dex::provide_liquidity', hang=True)
    orchestrator = DeploymentOrchestrator(hanging, assembler, clock, ledger_timeout=0.05)
    record = await orchestrator.deploy('req-1', params)

    assert record.status == DeploymentStatus.FAILED
    assert record.failed_step == 'liquidity'
    assert 'timed out' in record.last_error
    assert record.artifacts['failure_reason'] == 'timeout'


@pytest.mark.asyncio
async def test_missing_event_is_a_step_failure(assembler, clock, params):
    orchestrator = DeploymentOrchestrator(SilentLedger(), assembler, clock)
    record = await orchestrator.deploy('req-1', params)
    assert record.failed_step == 'create_token'
    assert record.artifacts['failure_reason'] == 'missing_event'


@pytest.mark.asyncio
async def test_one_orchestration_per_request(ledger, assembler, clock, params):
    gated = GatedLedger(ledger)
    orchestrator = DeploymentOrchestrator(gated, assembler, clock)

    first = asyncio.create_task(orchestrator.deploy('req-1', params))
    await asyncio.sleep(0)
    with pytest.raises(StateConflict) as exc:
        await orchestrator.deploy('req-1', params)
    assert exc.value.reason == 'in_flight'

    gated.gate.set()
    record = await first
    assert record.status == DeploymentStatus.LIQUIDITY_LOCKED

    with pytest.raises(StateConflict) as exc:
        await orchestrator.deploy('req-1', params)
    assert exc.value.reason == 'already_orchestrated'


@pytest.mark.asyncio
async def test_concurrent_requests_run_independently(orchestrator, params):
    records = await asyncio.gather(*(orchestrator.deploy(f"req-{i}", params) for i in range(3)))
    assert all(record.status == DeploymentStatus.LIQUIDITY_LOCKED for record in records)
    assert len({record.token_id for record in records}) == 3


@pytest.mark.asyncio
async def test_to_result(orchestrator, params, ledger, assembler, clock):
    record = await orchestrator.deploy('req-1', params)
    result = orchestrator.to_result(record)
    assert result.success
    assert result.token_id == record.token_id
    assert result.tx_ref == record.tx_ref_for('create_token')
    assert result.lock_id == record.artifacts['lock_id']
    assert result.metadata.symbol == 'CMON'
    assert result.reason is None

    failing = DeploymentOrchestrator(FlakyLedger(ledger, 'dex::provide_liquidity'), assembler, clock)
    failed = failing.to_result(await failing.deploy('req-2', params))
    assert not failed.success
    assert failed.step == 'liquidity'
    assert 'reverted' in failed.reason
    assert failed.lock_id is None
