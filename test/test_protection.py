import pytest

from forgedeploy.errors import NotAuthorized, StateConflict, ValidationError

TOKEN = '0xtoken'
OWNER = 'creator'
SUPPLY = 1_000_000


@pytest.fixture
def token(protection):
    protection.create_protection(TOKEN, OWNER, cooldown_period=300, max_buy_percent_bps=500, enable_delay=300)
    return TOKEN


def test_create_protection_starts_disabled_and_whitelists_owner(protection, clock):
    config = protection.create_protection(TOKEN, OWNER, cooldown_period=300, max_buy_percent_bps=500, enable_delay=300)
    assert config.trading_enabled is False
    assert config.enable_time == clock.now() + 300
    assert OWNER in config.whitelist


def test_protection_cannot_be_created_twice(protection, token):
    with pytest.raises(StateConflict) as exc:
        protection.create_protection(TOKEN, OWNER, 300, 500, 300)
    assert exc.value.reason == 'protection_exists'


def test_buy_before_enable_time_fails(protection, token, clock):
    clock.advance(299)
    check = protection.evaluate_buy(token, 'buyer', 100, SUPPLY)
    assert not check.allowed
    assert check.reason == 'trading_disabled'
    assert protection.is_trading_enabled(token) is False


def test_first_check_at_enable_time_activates_trading(protection, token, clock):
    clock.advance(300)
    check = protection.evaluate_buy(token, 'buyer', 100, SUPPLY)
    assert check.allowed
    assert check.trading_activated
    assert protection.is_trading_enabled(token) is True


def test_activation_is_permanent_even_if_later_check_fails(protection, token, clock):
    clock.advance(300)
    check = protection.evaluate_buy(token, 'whale', SUPPLY, SUPPLY)
    assert check.reason == 'max_buy_exceeded'
    assert check.trading_activated
    assert protection.is_trading_enabled(token)

    # an explicit earlier timestamp does not turn it back off
    assert protection.evaluate_buy(token, 'buyer', 10, SUPPLY, now=clock.now() - 1000).allowed
    assert protection.is_trading_enabled(token)


def test_whitelisted_buyer_bypasses_everything(protection, token):
    assert protection.check_can_buy(token, OWNER, SUPPLY * 10, SUPPLY)
    assert protection.get_buy_record(token, OWNER) is None


def test_blacklisted_buyer_always_fails(protection, token, clock):
    protection.add_to_blacklist(token, OWNER, 'bot')
    clock.advance(1000)
    check = protection.evaluate_buy(token, 'bot', 1, SUPPLY)
    assert check.reason == 'blacklisted'


def test_max_buy_boundary(protection, token, clock):
    clock.advance(300)
    max_buy = SUPPLY * 500 // 10_000
    assert protection.check_can_buy(token, 'a', max_buy, SUPPLY)
    assert protection.evaluate_buy(token, 'b', max_buy + 1, SUPPLY).reason == 'max_buy_exceeded'


def test_cooldown_enforcement(protection, token, clock):
    clock.advance(300)
    t0 = clock.now()
    assert protection.check_can_buy(token, 'buyer', 100, SUPPLY, now=t0)

    check = protection.evaluate_buy(token, 'buyer', 100, SUPPLY, now=t0 + 299)
    assert check.reason == 'cooldown_active'

    assert protection.check_can_buy(token, 'buyer', 100, SUPPLY, now=t0 + 300)
    record = protection.get_buy_record(token, 'buyer')
    assert record.total_bought == 200
    assert record.last_buy_time == t0 + 300


def test_failed_buy_does_not_update_tracking(protection, token, clock):
    clock.advance(300)
    protection.evaluate_buy(token, 'buyer', SUPPLY, SUPPLY)
    assert protection.get_buy_record(token, 'buyer') is None


def test_list_changes_fail_loud(protection, token):
    with pytest.raises(StateConflict) as exc:
        protection.add_to_whitelist(token, OWNER, OWNER)
    assert exc.value.reason == 'already_whitelisted'

    with pytest.raises(StateConflict) as exc:
        protection.remove_from_whitelist(token, OWNER, 'nobody')
    assert exc.value.reason == 'not_whitelisted'

    protection.add_to_blacklist(token, OWNER, 'bot')
    with pytest.raises(StateConflict):
        protection.add_to_blacklist(token, OWNER, 'bot')
    protection.remove_from_blacklist(token, OWNER, 'bot')
    with pytest.raises(StateConflict):
        protection.remove_from_blacklist(token, OWNER, 'bot')


def test_only_owner_manages_lists(protection, token):
    with pytest.raises(NotAuthorized) as exc:
        protection.add_to_whitelist(token, 'mallory', 'mallory')
    assert exc.value.reason == 'not_owner'
    with pytest.raises(NotAuthorized):
        protection.set_cooldown_period(token, 'mallory', 0)


def test_limits_are_live_mutable(protection, token, clock):
    clock.advance(300)
    assert protection.evaluate_buy(token, 'a', 60_000, SUPPLY).reason == 'max_buy_exceeded'
    protection.set_max_buy_percent(token, OWNER, 1000)
    assert protection.check_can_buy(token, 'a', 60_000, SUPPLY)

    protection.set_cooldown_period(token, OWNER, 0)
    assert protection.check_can_buy(token, 'a', 1, SUPPLY)


def test_invalid_limits_rejected(protection, token):
    with pytest.raises(ValidationError):
        protection.set_max_buy_percent(token, OWNER, 0)
    with pytest.raises(ValidationError):
        protection.set_max_buy_percent(token, OWNER, 10_001)
    with pytest.raises(ValidationError):
        protection.set_cooldown_period(token, OWNER, -1)


def test_unknown_token(protection):
    with pytest.raises(StateConflict) as exc:
        protection.evaluate_buy('0xmissing', 'buyer', 1, SUPPLY)
    assert exc.value.reason == 'unknown_token'
    assert protection.get_protection('0xmissing') is None


def test_get_protection_returns_a_snapshot(protection, token):
    snapshot = protection.get_protection(token)
    snapshot.whitelist.add('intruder')
    snapshot.trading_enabled = True
    assert 'intruder' not in protection.get_protection(token).whitelist
    assert protection.is_trading_enabled(token) is False
