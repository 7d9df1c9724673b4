import pytest

from forgedeploy.clock import format_duration
from forgedeploy.config import DAY, WEB3_REQUIRED_VARS, Settings

ENV_VARS = [
    'FORGE_ENV', 'LEDGER_MODE', 'PROTOCOL_FEE_BPS', 'CREATOR_FEE_BPS', 'DEDUP_TTL',
    'DEFAULT_LOCK_DURATION', 'MIN_LOCK_DURATION', 'DEFAULT_COOLDOWN_PERIOD',
] + WEB3_REQUIRED_VARS


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for var in ENV_VARS:
        # set first so teardown also removes values loaded from env files
        monkeypatch.setenv(var, "unset")
        monkeypatch.delenv(var)
    # keep a developer's .env out of the way
    monkeypatch.chdir(tmp_path)


def test_production_profile_defaults():
    settings = Settings.from_env()
    assert settings.env == 'production'
    assert settings.cooldown_period == 300
    assert settings.max_buy_percent_bps == 500
    assert settings.enable_delay == 300
    assert settings.lock_duration == 30 * DAY
    assert settings.min_lock_duration == 30 * DAY
    assert settings.lock_days == 30
    assert settings.dedup_ttl is None
    assert settings.ledger_mode == 'local'


def test_development_profile(monkeypatch):
    monkeypatch.setenv('FORGE_ENV', 'development')
    settings = Settings.from_env()
    assert settings.cooldown_period == 60
    assert settings.max_buy_percent_bps == 1000
    assert settings.lock_duration == 300
    assert settings.min_lock_duration == 300


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv('DEFAULT_COOLDOWN_PERIOD', '120')
    monkeypatch.setenv('DEDUP_TTL', '3600')
    settings = Settings.from_env()
    assert settings.cooldown_period == 120
    assert settings.dedup_ttl == 3600


def test_env_file_is_loaded(tmp_path):
    env_file = tmp_path / 'forge.env'
    env_file.write_text('FORGE_ENV=development\n')
    assert Settings.from_env(str(env_file)).env == 'development'


@pytest.mark.parametrize('overrides', [
    {'FORGE_ENV': 'staging'},
    {'PROTOCOL_FEE_BPS': '300'},
    {'DEFAULT_LOCK_DURATION': '60'},
    {'LEDGER_MODE': 'carrier-pigeon'},
])
def test_invalid_configuration_rejected(monkeypatch, overrides):
    for key, value in overrides.items():
        monkeypatch.setenv(key, value)
    with pytest.raises(ValueError):
        Settings.from_env()


def test_web3_mode_lists_missing_variables(monkeypatch):
    monkeypatch.setenv('LEDGER_MODE', 'web3')
    monkeypatch.setenv('RPC_URL', 'http://localhost:8545')
    with pytest.raises(ValueError) as exc:
        Settings.from_env()
    assert 'PRIVATE_KEY' in str(exc.value)
    assert 'RPC_URL' not in str(exc.value)


def test_lock_period_is_readable_below_a_day(monkeypatch):
    monkeypatch.setenv('FORGE_ENV', 'development')
    settings = Settings.from_env()
    assert settings.lock_period == '5 minutes'
    assert Settings().lock_period == '30 days'


@pytest.mark.parametrize('seconds, text', [
    (86_400, '1 day'),
    (2 * 86_400 + 5, '2 days'),
    (7_200, '2 hours'),
    (300, '5 minutes'),
    (1, '1 second'),
    (0, '0 seconds'),
])
def test_format_duration(seconds, text):
    assert format_duration(seconds) == text
