import time

from forgedeploy.models import DeploymentRecord, DeploymentRequest, DeploymentStatus


def make_request(actor='Alice', received_at=None, event_id='tweet-1'):
    return DeploymentRequest(
        source='twitter',
        actor_id=actor,
        raw_text='create a rocket cat token called CatMoon with symbol CMON',
        received_at=received_at or int(time.time()),
        event_id=event_id,
    )


def test_request_round_trip(db):
    request = make_request()
    db.save_request(request, 'CatMoon', 'CMON')

    row = db.get_deployment(request.request_id)
    assert row['status'] == 'pending'
    assert row['actor_id'] == 'alice'
    assert row['token_symbol'] == 'CMON'
    assert db.get_deployment('missing') is None


def test_transitions_update_row_and_append_steps(db):
    request = make_request()
    db.save_request(request, 'CatMoon', 'CMON')

    record = DeploymentRecord(request_id=request.request_id)
    record.advance('metadata', DeploymentStatus.METADATA_READY, 'sha256:abc', 100)
    db.record_transition(record, record.transaction_refs[-1])
    record.token_id = '0xtoken'
    record.advance('create_token', DeploymentStatus.DEPLOYED, '0xtx', 101)
    db.record_transition(record, record.transaction_refs[-1])
    record.fail('protection', 'reverted', 102)
    db.record_transition(record, record.transaction_refs[-1])

    row = db.get_deployment(request.request_id)
    assert row['status'] == 'failed'
    assert row['token_id'] == '0xtoken'
    assert row['failed_step'] == 'protection'
    assert row['last_error'] == 'reverted'

    steps = db.get_steps(request.request_id)
    assert [(s['step'], s['status'], s['tx_ref']) for s in steps] == [
        ('metadata', 'metadata_ready', 'sha256:abc'),
        ('create_token', 'deployed', '0xtx'),
        ('protection', 'failed', None),
    ]


def test_actor_lookup_is_case_insensitive(db):
    db.save_request(make_request('Alice', event_id='1'), 'A', 'AA')
    db.save_request(make_request('alice', event_id='2'), 'B', 'BB')
    db.save_request(make_request('bob', event_id='3'), 'C', 'CC')
    assert len(db.get_actor_deployments('ALICE')) == 2


def test_stats_cover_the_last_day(db):
    now = int(time.time())
    ok = make_request(received_at=now, event_id='1')
    bad = make_request(received_at=now, event_id='2')
    old = make_request(received_at=now - 2 * 86400, event_id='3')
    for request in (ok, bad, old):
        db.save_request(request, 'CatMoon', 'CMON')

    record = DeploymentRecord(request_id=ok.request_id, status=DeploymentStatus.LIQUIDITY_PROVIDED)
    record.advance('lock', DeploymentStatus.LIQUIDITY_LOCKED, '0xlock', now)
    db.record_transition(record, record.transaction_refs[-1])

    failed = DeploymentRecord(request_id=bad.request_id)
    failed.fail('metadata', 'boom', now)
    db.record_transition(failed, failed.transaction_refs[-1])

    stats = db.get_deployment_stats()
    assert stats == {'total_requests_24h': 2, 'successful_deploys_24h': 1, 'failed_deploys_24h': 1}
