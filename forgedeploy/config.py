"""
Configuration loaded from the environment (.env supported)
"""

import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from dotenv import load_dotenv

from forgedeploy.clock import format_duration

DAY = 86_400

# Profile defaults: production is strict, development uses short timers so
# a whole lifecycle (trading activation, lock maturity) can be observed quickly
PROFILES = {
    'production': {
        'cooldown_period': 300,         # 5 minutes between buys per address
        'max_buy_percent_bps': 500,     # 5% of supply per buy
        'enable_delay': 300,            # trading opens 5 minutes after launch
        'lock_duration': 30 * DAY,
        'min_lock_duration': 30 * DAY,
    },
    'development': {
        'cooldown_period': 60,
        'max_buy_percent_bps': 1000,
        'enable_delay': 60,
        'lock_duration': 300,
        'min_lock_duration': 300,
    },
}

WEB3_REQUIRED_VARS = [
    'PRIVATE_KEY', 'RPC_URL', 'TOKEN_FACTORY_ADDRESS', 'ANTI_BOT_ADDRESS',
    'FEE_DISTRIBUTOR_ADDRESS', 'DEX_ADDRESS', 'LIQUIDITY_LOCKER_ADDRESS',
]


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == '':
        return default
    return int(value)


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value.strip() == '':
        return default
    return float(value)


@dataclass
class Settings:
    """All tunables for one deployer process"""
    env: str = 'production'

    # Admission control
    rate_max_requests: int = 3
    rate_time_window: int = 3600
    rate_cooldown: int = DAY
    dedup_ttl: Optional[int] = None
    min_text_length: int = 5

    # Request normalization
    confidence_threshold: int = 70

    # Anti-bot defaults applied at deployment
    cooldown_period: int = 300
    max_buy_percent_bps: int = 500
    enable_delay: int = 300

    # Liquidity lock
    lock_duration: int = 30 * DAY
    min_lock_duration: int = 30 * DAY

    # Fees (bps of the 10% fee budget)
    protocol_fee_bps: int = 200
    creator_fee_bps: int = 800
    fee_admin: str = 'protocol-admin'

    # Token economics
    decimals: int = 9
    max_supply: int = 1_000_000_000_000
    initial_supply: int = 500_000_000_000
    liquidity_token_amount: int = 1_000_000_000
    liquidity_quote_amount: int = 50_000_000_000

    # Collaborator timeouts (seconds)
    content_timeout: float = 30.0
    image_timeout: float = 60.0
    ledger_timeout: float = 300.0

    # Collaborators
    ledger_mode: str = 'local'
    deployer_address: str = 'forge-deployer'
    openai_api_key: Optional[str] = None
    openai_model: str = 'gpt-4-turbo'
    openai_base_url: str = 'https://api.openai.com/v1'
    pinata_api_key: Optional[str] = None
    pinata_secret_key: Optional[str] = None
    web3_storage_token: Optional[str] = None
    telegram_bot_token: Optional[str] = None
    telegram_channel_id: Optional[str] = None
    telegram_notifications_enabled: bool = False

    # web3 ledger
    private_key: Optional[str] = None
    rpc_url: Optional[str] = None
    contract_addresses: Dict[str, str] = field(default_factory=dict)
    gas_limit: int = 6_000_000

    # Branding used in fallback content and replies
    brand_hashtags: List[str] = field(default_factory=lambda: ['#SuiMeme', '#SuiForge'])
    explorer_url: str = 'https://suiexplorer.com/object/'
    trade_url: str = 'https://suiforge.io/trade/'

    @classmethod
    def from_env(cls, env_file: Optional[str] = None) -> 'Settings':
        """Load configuration from environment"""
        load_dotenv(env_file)

        env = os.getenv('FORGE_ENV', 'production').lower()
        if env not in PROFILES:
            raise ValueError(f"Unknown FORGE_ENV '{env}' (expected one of {sorted(PROFILES)})")
        profile = PROFILES[env]

        dedup_ttl = os.getenv('DEDUP_TTL')

        settings = cls(
            env=env,
            rate_max_requests=_env_int('RATE_MAX_REQUESTS', 3),
            rate_time_window=_env_int('RATE_TIME_WINDOW', 3600),
            rate_cooldown=_env_int('RATE_COOLDOWN', DAY),
            dedup_ttl=int(dedup_ttl) if dedup_ttl else None,
            confidence_threshold=_env_int('CONFIDENCE_THRESHOLD', 70),
            cooldown_period=_env_int('DEFAULT_COOLDOWN_PERIOD', profile['cooldown_period']),
            max_buy_percent_bps=_env_int('DEFAULT_MAX_BUY_PERCENT', profile['max_buy_percent_bps']),
            enable_delay=_env_int('DEFAULT_ENABLE_TIME_DELAY', profile['enable_delay']),
            lock_duration=_env_int('DEFAULT_LOCK_DURATION', profile['lock_duration']),
            min_lock_duration=_env_int('MIN_LOCK_DURATION', profile['min_lock_duration']),
            protocol_fee_bps=_env_int('PROTOCOL_FEE_BPS', 200),
            creator_fee_bps=_env_int('CREATOR_FEE_BPS', 800),
            fee_admin=os.getenv('FEE_ADMIN', 'protocol-admin'),
            decimals=_env_int('DEFAULT_DECIMALS', 9),
            max_supply=_env_int('DEFAULT_MAX_SUPPLY', 1_000_000_000_000),
            initial_supply=_env_int('DEFAULT_INITIAL_SUPPLY', 500_000_000_000),
            liquidity_token_amount=_env_int('LIQUIDITY_TOKEN_AMOUNT', 1_000_000_000),
            liquidity_quote_amount=_env_int('LIQUIDITY_QUOTE_AMOUNT', 50_000_000_000),
            content_timeout=_env_float('CONTENT_TIMEOUT', 30.0),
            image_timeout=_env_float('IMAGE_TIMEOUT', 60.0),
            ledger_timeout=_env_float('LEDGER_TIMEOUT', 300.0),
            ledger_mode=os.getenv('LEDGER_MODE', 'local').lower(),
            deployer_address=os.getenv('DEPLOYER_ADDRESS', 'forge-deployer'),
            openai_api_key=os.getenv('OPENAI_API_KEY'),
            openai_model=os.getenv('OPENAI_MODEL', 'gpt-4-turbo'),
            openai_base_url=os.getenv('OPENAI_BASE_URL', 'https://api.openai.com/v1'),
            pinata_api_key=os.getenv('PINATA_API_KEY'),
            pinata_secret_key=os.getenv('PINATA_SECRET_KEY'),
            web3_storage_token=os.getenv('WEB3_STORAGE_TOKEN'),
            telegram_bot_token=os.getenv('TELEGRAM_BOT_TOKEN'),
            telegram_channel_id=os.getenv('TELEGRAM_CHANNEL_ID'),
            telegram_notifications_enabled=os.getenv('TELEGRAM_NOTIFICATIONS_ENABLED', 'false').lower() == 'true',
            private_key=os.getenv('PRIVATE_KEY'),
            rpc_url=os.getenv('RPC_URL'),
            contract_addresses={
                'token_factory': os.getenv('TOKEN_FACTORY_ADDRESS', ''),
                'anti_bot': os.getenv('ANTI_BOT_ADDRESS', ''),
                'fee_distributor': os.getenv('FEE_DISTRIBUTOR_ADDRESS', ''),
                'dex': os.getenv('DEX_ADDRESS', ''),
                'liquidity_locker': os.getenv('LIQUIDITY_LOCKER_ADDRESS', ''),
            },
            gas_limit=_env_int('GAS_LIMIT', 6_000_000),
            explorer_url=os.getenv('EXPLORER_URL', 'https://suiexplorer.com/object/'),
            trade_url=os.getenv('TRADE_URL', 'https://suiforge.io/trade/'),
        )
        settings.validate()
        return settings

    def validate(self) -> None:
        """Reject configurations the components would refuse later anyway"""
        if self.protocol_fee_bps + self.creator_fee_bps != 1000:
            raise ValueError(
                f"PROTOCOL_FEE_BPS + CREATOR_FEE_BPS must equal 1000 "
                f"(got {self.protocol_fee_bps} + {self.creator_fee_bps})"
            )
        if self.lock_duration < self.min_lock_duration:
            raise ValueError(
                f"DEFAULT_LOCK_DURATION ({self.lock_duration}s) is below MIN_LOCK_DURATION ({self.min_lock_duration}s)"
            )
        if self.ledger_mode not in ('local', 'web3'):
            raise ValueError(f"Unknown LEDGER_MODE '{self.ledger_mode}'")
        if self.ledger_mode == 'web3':
            missing = [var for var in WEB3_REQUIRED_VARS if not os.getenv(var)]
            if missing:
                raise ValueError(f"Missing required environment variables: {missing}")

    @property
    def lock_days(self) -> int:
        return self.lock_duration // DAY

    @property
    def lock_period(self) -> str:
        return format_duration(self.lock_duration)
