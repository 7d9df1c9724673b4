import pytest

from forgedeploy.config import DAY
from forgedeploy.errors import NotAuthorized, PolicyViolation, StateConflict, ValidationError

D = 30 * DAY


def test_lock_matures_exactly_at_unlock_time(escrow, clock):
    lock = escrow.lock('alice', 'LP<pool>', 1000, D)
    assert lock.unlock_time == clock.now() + D

    clock.set(lock.unlock_time - 1)
    with pytest.raises(PolicyViolation) as exc:
        escrow.unlock(lock.lock_id, 'alice')
    assert exc.value.reason == 'still_locked'

    clock.set(lock.unlock_time)
    assert escrow.unlock(lock.lock_id, 'alice') == 1000

    with pytest.raises(StateConflict) as exc:
        escrow.unlock(lock.lock_id, 'alice')
    assert exc.value.reason == 'lock_not_found'


def test_duration_below_minimum_is_rejected(escrow):
    with pytest.raises(PolicyViolation) as exc:
        escrow.lock('alice', 'LP<pool>', 1000, D - 1)
    assert exc.value.reason == 'lock_too_short'


def test_amount_must_be_positive(escrow):
    with pytest.raises(ValidationError):
        escrow.lock('alice', 'LP<pool>', 0, D)


def test_only_depositor_can_unlock(escrow, clock):
    lock = escrow.lock('alice', 'LP<pool>', 1000, D)
    clock.advance(D)
    with pytest.raises(NotAuthorized) as exc:
        escrow.unlock(lock.lock_id, 'mallory')
    assert exc.value.reason == 'not_depositor'
    assert escrow.get_lock(lock.lock_id) is not None


def test_total_locked_matches_unreleased_locks(escrow, clock):
    first = escrow.lock('alice', 'LP<a>', 1000, D)
    escrow.lock('bob', 'LP<a>', 500, D + DAY)
    escrow.lock('bob', 'LP<b>', 70, D)
    assert escrow.total_locked() == 1570
    assert escrow.total_locked('LP<a>') == 1500

    clock.advance(D)
    escrow.unlock(first.lock_id, 'alice')
    assert escrow.total_locked() == 570
    assert escrow.total_locked('LP<a>') == 500


def test_lock_ids_are_unique(escrow):
    ids = {escrow.lock('alice', 'LP<a>', 1, D).lock_id for _ in range(50)}
    assert len(ids) == 50


def test_queries(escrow, clock):
    later = escrow.lock('bob', 'LP<a>', 5, D + DAY)
    sooner = escrow.lock('bob', 'LP<a>', 7, D)
    escrow.lock('alice', 'LP<a>', 9, D)

    assert [lock.lock_id for lock in escrow.locks_for('bob')] == [sooner.lock_id, later.lock_id]
    assert escrow.time_remaining(sooner.lock_id) == D
    clock.advance(D + 10)
    assert escrow.time_remaining(sooner.lock_id) == 0
    with pytest.raises(StateConflict):
        escrow.time_remaining('0xmissing')
