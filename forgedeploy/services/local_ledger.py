"""
In-process ledger

Executes LedgerCalls against the anti-bot engine, the liquidity lock escrow,
the fee router, a token registry and a constant-product pool registry.
Engine errors surface as CollaboratorError (the call aborted) with the
engine's reason code kept.
"""

import logging
import math
from collections import defaultdict
from typing import Any, Dict, List, Optional, Tuple

from eth_hash.auto import keccak

from forgedeploy.errors import CollaboratorError, ForgeError, PolicyViolation, StateConflict, ValidationError
from forgedeploy.services.ledger import LedgerCall, LedgerClient, LedgerEvent, SubmitResult

QUOTE_ASSET = 'QUOTE'
TRADING_FEE_BPS = 100  # 1% of every buy goes to the fee router


def _derive_id(*parts: Any) -> str:
    """Address-shaped id: first 20 bytes of keccak over the parts"""
    digest = keccak(':'.join(str(p) for p in parts).encode('utf-8'))
    return '0x' + digest[:20].hex()


class LocalLedger(LedgerClient):

    def __init__(self, clock, protection, escrow, fees, sender: str = 'forge-deployer'):
        self.logger = logging.getLogger('forgedeploy')
        self.clock = clock
        self.protection = protection
        self.escrow = escrow
        self.fees = fees
        self.sender = sender

        self.balances: Dict[Tuple[str, str], int] = defaultdict(int)
        self.tokens: Dict[str, Dict[str, Any]] = {}
        self.pools: Dict[str, Dict[str, Any]] = {}
        self._pool_by_token: Dict[str, str] = {}
        self._nonce = 0
        self.transactions: List[SubmitResult] = []

        self._handlers = {
            ('token_factory', 'create_token'): self._create_token,
            ('anti_bot', 'create_protection'): self._create_protection,
            ('fee_distributor', 'create_token_fee_config'): self._create_fee_config,
            ('dex', 'provide_liquidity'): self._provide_liquidity,
            ('dex', 'buy'): self._buy,
            ('liquidity_locker', 'lock_liquidity'): self._lock_liquidity,
            ('liquidity_locker', 'unlock_liquidity'): self._unlock_liquidity,
        }

    async def submit(self, call: LedgerCall) -> SubmitResult:
        handler = self._handlers.get((call.module, call.function))
        if handler is None:
            raise CollaboratorError(f"Unknown ledger call {call.target}", reason='unknown_call')

        sender = call.sender or self.sender
        self._nonce += 1
        tx_ref = '0x' + keccak(f"{sender}:{self._nonce}:{call.target}".encode('utf-8')).hex()

        try:
            events = handler(sender, **call.args)
        except ForgeError as e:
            self.logger.warning(f"{call.target} aborted ({e.reason}): {e}")
            raise CollaboratorError(f"{call.target} aborted: {e}", reason=e.reason) from e
        except TypeError as e:
            raise CollaboratorError(f"Bad arguments for {call.target}: {e}", reason='bad_arguments') from e

        result = SubmitResult(tx_ref=tx_ref, events=events)
        self.transactions.append(result)
        self.logger.debug(f"{call.target} executed in {tx_ref}")
        return result

    def faucet(self, owner: str, amount: int, asset: str = QUOTE_ASSET) -> None:
        """Credit quote funds for local runs and tests"""
        self.balances[(owner, asset)] += amount

    def balance_of(self, owner: str, asset: str) -> int:
        return self.balances.get((owner, asset), 0)

    def get_token(self, token_id: str) -> Optional[Dict[str, Any]]:
        token = self.tokens.get(token_id)
        return dict(token) if token is not None else None

    def get_pool_for(self, token_id: str) -> Optional[Dict[str, Any]]:
        pool_id = self._pool_by_token.get(token_id)
        return dict(self.pools[pool_id]) if pool_id else None

    def _require_balance(self, owner: str, asset: str, amount: int) -> None:
        held = self.balance_of(owner, asset)
        if held < amount:
            raise StateConflict(f"{owner} holds {held} {asset}, needs {amount}", reason='insufficient_balance')

    def _debit(self, owner: str, asset: str, amount: int) -> None:
        self._require_balance(owner, asset, amount)
        self.balances[(owner, asset)] -= amount

    def _require_token(self, token_id: str) -> Dict[str, Any]:
        token = self.tokens.get(token_id)
        if token is None:
            raise StateConflict(f"Unknown token {token_id}", reason='unknown_token')
        return token

    # token_factory

    def _create_token(self, sender, name, symbol, description, image_url, decimals, max_supply, initial_supply):
        if initial_supply > max_supply:
            raise ValidationError("Initial supply exceeds max supply", reason='supply_exceeds_max')

        token_id = _derive_id(sender, symbol, self._nonce)
        self.tokens[token_id] = {
            'token_id': token_id,
            'name': name,
            'symbol': symbol,
            'description': description,
            'image_url': image_url,
            'decimals': decimals,
            'max_supply': max_supply,
            'total_supply': initial_supply,
            'creator': sender,
            'created_at': self.clock.now(),
        }
        self.balances[(sender, token_id)] += initial_supply
        self.logger.info(f"TokenCreated {symbol} at {token_id}")
        return [LedgerEvent('token_factory::TokenCreated', {
            'token_id': token_id, 'creator': sender, 'symbol': symbol, 'initial_supply': initial_supply,
        })]

    # anti_bot

    def _create_protection(self, sender, token_id, cooldown_period, max_buy_percent_bps, enable_delay):
        self._require_token(token_id)
        config = self.protection.create_protection(
            token_id, owner=sender, cooldown_period=cooldown_period,
            max_buy_percent_bps=max_buy_percent_bps, enable_delay=enable_delay,
        )
        return [LedgerEvent('anti_bot::ProtectionCreated', {
            'token_id': token_id, 'owner': sender, 'enable_time': config.enable_time,
        })]

    # fee_distributor

    def _create_fee_config(self, sender, token_id, creator):
        self._require_token(token_id)
        self.fees.register_token(token_id, creator)
        return [LedgerEvent('fee_distributor::FeeConfigCreated', {'token_id': token_id, 'creator': creator})]

    # dex

    def _provide_liquidity(self, sender, token_id, token_amount, quote_amount):
        self._require_token(token_id)
        if token_amount <= 0 or quote_amount <= 0:
            raise ValidationError("Liquidity amounts must be positive", reason='invalid_amount')

        pool_id = self._pool_by_token.get(token_id)
        pool = self.pools.get(pool_id) if pool_id else None

        if pool is None:
            lp_amount = math.isqrt(token_amount * quote_amount)
        else:
            lp_amount = min(
                token_amount * pool['lp_supply'] // pool['token_reserve'],
                quote_amount * pool['lp_supply'] // pool['quote_reserve'],
            )
        if lp_amount <= 0:
            raise PolicyViolation("Deposit too small to mint liquidity shares", reason='insufficient_liquidity')

        # Check both sides before moving either
        self._require_balance(sender, token_id, token_amount)
        self._require_balance(sender, QUOTE_ASSET, quote_amount)
        self._debit(sender, token_id, token_amount)
        self._debit(sender, QUOTE_ASSET, quote_amount)

        if pool is None:
            pool_id = _derive_id('pool', token_id)
            pool = {
                'pool_id': pool_id,
                'token_id': token_id,
                'lp_type': f"LP<{pool_id}>",
                'token_reserve': 0,
                'quote_reserve': 0,
                'lp_supply': 0,
            }
            self.pools[pool_id] = pool
            self._pool_by_token[token_id] = pool_id

        pool['token_reserve'] += token_amount
        pool['quote_reserve'] += quote_amount
        pool['lp_supply'] += lp_amount
        self.balances[(sender, pool['lp_type'])] += lp_amount

        self.logger.info(f"LiquidityProvided to {pool_id}: {token_amount} tokens / {quote_amount} quote -> {lp_amount} LP")
        return [LedgerEvent('dex::LiquidityProvided', {
            'pool_id': pool_id, 'token_id': token_id, 'lp_type': pool['lp_type'], 'lp_amount': lp_amount,
        })]

    def _buy(self, sender, token_id, quote_amount):
        """Constant-product buy, guarded by the anti-bot engine"""
        token = self._require_token(token_id)
        pool_id = self._pool_by_token.get(token_id)
        if pool_id is None:
            raise StateConflict(f"No pool for {token_id}", reason='no_pool')
        pool = self.pools[pool_id]

        if quote_amount <= 0:
            raise ValidationError("Buy amount must be positive", reason='invalid_amount')
        if self.fees.creator_of(token_id) is None:
            raise StateConflict(f"No fee config for {token_id}", reason='unknown_token')
        self._require_balance(sender, QUOTE_ASSET, quote_amount)

        fee = quote_amount * TRADING_FEE_BPS // 10_000
        quote_in = quote_amount - fee
        amount_out = pool['token_reserve'] * quote_in // (pool['quote_reserve'] + quote_in)
        if amount_out <= 0:
            raise PolicyViolation("Buy too small for the pool", reason='insufficient_output')

        check = self.protection.evaluate_buy(token_id, sender, amount_out, token['total_supply'])
        if not check.allowed:
            raise PolicyViolation(f"Buy of {amount_out} {token['symbol']} blocked: {check.reason}", reason=check.reason)

        self._debit(sender, QUOTE_ASSET, quote_amount)
        pool['quote_reserve'] += quote_in
        pool['token_reserve'] -= amount_out
        self.balances[(sender, token_id)] += amount_out
        if fee:
            self.fees.collect_fees(token_id, fee)

        return [LedgerEvent('dex::TokensBought', {
            'token_id': token_id, 'buyer': sender, 'amount': amount_out, 'fee': fee,
        })]

    # liquidity_locker

    def _lock_liquidity(self, sender, lp_type, amount, duration):
        self._require_balance(sender, lp_type, amount)

        lock = self.escrow.lock(sender, lp_type, amount, duration)
        self._debit(sender, lp_type, amount)
        return [LedgerEvent('liquidity_locker::LiquidityLocked', {
            'lock_id': lock.lock_id, 'depositor': sender, 'amount': amount, 'unlock_time': lock.unlock_time,
        })]

    def _unlock_liquidity(self, sender, lock_id):
        lock = self.escrow.get_lock(lock_id)
        amount = self.escrow.unlock(lock_id, sender)
        self.balances[(sender, lock.token_type)] += amount
        return [LedgerEvent('liquidity_locker::LiquidityUnlocked', {
            'lock_id': lock_id, 'depositor': sender, 'amount': amount,
        })]
