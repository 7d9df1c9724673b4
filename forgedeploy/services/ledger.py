"""
Ledger submission: the call/result shapes and the web3 (EVM) client
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from eth_account import Account
from eth_utils import to_checksum_address
from web3 import Web3
from web3.logs import DISCARD

from forgedeploy.errors import CollaboratorError


@dataclass(frozen=True)
class LedgerCall:
    """One contract call; `args` is ordered as the contract function expects"""
    module: str
    function: str
    args: Dict[str, Any] = field(default_factory=dict)
    sender: Optional[str] = None

    @property
    def target(self) -> str:
        return f"{self.module}::{self.function}"


@dataclass
class LedgerEvent:
    type: str  # "<module>::<EventName>"
    data: Dict[str, Any]


@dataclass
class SubmitResult:
    tx_ref: str
    events: List[LedgerEvent] = field(default_factory=list)

    def find_event(self, name: str) -> Optional[LedgerEvent]:
        for event in self.events:
            if event.type == name or event.type.endswith(f"::{name}"):
                return event
        return None


class LedgerClient:
    """Submits calls; raises CollaboratorError on transport or execution failure"""

    sender: str

    async def submit(self, call: LedgerCall) -> SubmitResult:
        raise NotImplementedError


# Contract function names on the EVM side
FUNCTION_NAMES = {
    ('token_factory', 'create_token'): 'createToken',
    ('anti_bot', 'create_protection'): 'createProtection',
    ('fee_distributor', 'create_token_fee_config'): 'createTokenFeeConfig',
    ('dex', 'provide_liquidity'): 'provideLiquidity',
    ('dex', 'buy'): 'buy',
    ('liquidity_locker', 'lock_liquidity'): 'lockLiquidity',
    ('liquidity_locker', 'unlock_liquidity'): 'unlockLiquidity',
}

CONTRACT_EVENTS = {
    'token_factory': ['TokenCreated'],
    'anti_bot': ['ProtectionCreated'],
    'fee_distributor': ['FeeConfigCreated'],
    'dex': ['LiquidityProvided', 'TokensBought'],
    'liquidity_locker': ['LiquidityLocked', 'LiquidityUnlocked'],
}


def _fn(name, inputs, payable=False):
    return {
        "inputs": [{"name": n, "type": t} for n, t in inputs],
        "name": name,
        "outputs": [],
        "stateMutability": "payable" if payable else "nonpayable",
        "type": "function",
    }


def _event(name, inputs):
    return {
        "anonymous": False,
        "inputs": [{"indexed": indexed, "name": n, "type": t} for n, t, indexed in inputs],
        "name": name,
        "type": "event",
    }


# Minimal ABIs; event argument names match the LocalLedger event payloads
CONTRACT_ABIS = {
    'token_factory': [
        _fn('createToken', [
            ('name', 'string'), ('symbol', 'string'), ('description', 'string'),
            ('image_url', 'string'), ('decimals', 'uint8'), ('max_supply', 'uint256'),
            ('initial_supply', 'uint256'),
        ]),
        _event('TokenCreated', [
            ('token_id', 'address', True), ('creator', 'address', True),
            ('symbol', 'string', False), ('initial_supply', 'uint256', False),
        ]),
    ],
    'anti_bot': [
        _fn('createProtection', [
            ('token_id', 'address'), ('cooldown_period', 'uint64'),
            ('max_buy_percent_bps', 'uint64'), ('enable_delay', 'uint64'),
        ]),
        _event('ProtectionCreated', [
            ('token_id', 'address', True), ('owner', 'address', False), ('enable_time', 'uint64', False),
        ]),
    ],
    'fee_distributor': [
        _fn('createTokenFeeConfig', [('token_id', 'address'), ('creator', 'address')]),
        _event('FeeConfigCreated', [('token_id', 'address', True), ('creator', 'address', False)]),
    ],
    'dex': [
        _fn('provideLiquidity', [('token_id', 'address'), ('token_amount', 'uint256'), ('quote_amount', 'uint256')]),
        _fn('buy', [('token_id', 'address'), ('quote_amount', 'uint256')], payable=True),
        _event('LiquidityProvided', [
            ('pool_id', 'address', True), ('token_id', 'address', True),
            ('lp_type', 'address', False), ('lp_amount', 'uint256', False),
        ]),
        _event('TokensBought', [
            ('token_id', 'address', True), ('buyer', 'address', True),
            ('amount', 'uint256', False), ('fee', 'uint256', False),
        ]),
    ],
    'liquidity_locker': [
        _fn('lockLiquidity', [('lp_type', 'address'), ('amount', 'uint256'), ('duration', 'uint64')]),
        _fn('unlockLiquidity', [('lock_id', 'uint256')]),
        _event('LiquidityLocked', [
            ('lock_id', 'uint256', True), ('depositor', 'address', True),
            ('amount', 'uint256', False), ('unlock_time', 'uint64', False),
        ]),
        _event('LiquidityUnlocked', [
            ('lock_id', 'uint256', True), ('depositor', 'address', True), ('amount', 'uint256', False),
        ]),
    ],
}


class Web3LedgerClient(LedgerClient):
    """Signs and sends one EIP-1559 transaction per call"""

    def __init__(self, settings):
        self.logger = logging.getLogger('forgedeploy')
        self.w3 = Web3(Web3.HTTPProvider(settings.rpc_url))

        if not self.w3.is_connected():
            raise ConnectionError("Failed to connect to the RPC endpoint")

        self.account = Account.from_key(settings.private_key)
        self.sender = self.account.address
        self.gas_limit = settings.gas_limit
        self.receipt_timeout = settings.ledger_timeout

        self.contracts = {
            module: self.w3.eth.contract(address=to_checksum_address(address), abi=CONTRACT_ABIS[module])
            for module, address in settings.contract_addresses.items()
            if address
        }

        # For managing nonce in concurrent deployments
        self.nonce_lock = asyncio.Lock()
        self.last_nonce = None
        self.last_nonce_time = 0

        self.logger.info(f"Connected to chain {self.w3.eth.chain_id} as {self.sender}")

    async def submit(self, call: LedgerCall) -> SubmitResult:
        contract = self.contracts.get(call.module)
        function_name = FUNCTION_NAMES.get((call.module, call.function))
        if contract is None or function_name is None:
            raise CollaboratorError(f"No contract configured for {call.target}", reason='unknown_call')

        function_call = getattr(contract.functions, function_name)(*call.args.values())
        nonce = await self._next_nonce()

        try:
            receipt, tx_hash_hex = await asyncio.to_thread(self._send, function_call, nonce)
        except Exception as e:
            # Drop the cached nonce so the next call re-reads it from the node
            self.last_nonce = None
            raise CollaboratorError(f"{call.target} failed: {e}", reason='ledger_error') from e

        if receipt['status'] != 1:
            raise CollaboratorError(f"{call.target} reverted (tx {tx_hash_hex})", reason='tx_reverted')

        events = self._decode_events(contract, call.module, receipt)
        self.logger.info(f"{call.target} confirmed in {tx_hash_hex} ({len(events)} events)")
        return SubmitResult(tx_ref=tx_hash_hex, events=events)

    def _send(self, function_call, nonce: int):
        latest_block = self.w3.eth.get_block('latest')
        base_fee = latest_block['baseFeePerGas']
        max_priority_fee = self.w3.to_wei(1, 'gwei')
        max_fee_per_gas = int(base_fee * 1.2) + max_priority_fee

        tx = function_call.build_transaction({
            'from': self.sender, 'value': 0, 'gas': self.gas_limit,
            'maxFeePerGas': max_fee_per_gas, 'maxPriorityFeePerGas': max_priority_fee,
            'nonce': nonce, 'chainId': self.w3.eth.chain_id, 'type': 2
        })

        signed_tx = self.account.sign_transaction(tx)
        tx_hash = self.w3.eth.send_raw_transaction(signed_tx.raw_transaction)
        tx_hash_hex = tx_hash.hex()
        self.logger.debug(f"Transaction sent: {tx_hash_hex} (nonce {nonce})")

        receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)
        return receipt, tx_hash_hex

    async def _next_nonce(self) -> int:
        async with self.nonce_lock:
            current_time = time.time()

            # If we have a recent nonce (within 5 seconds), increment it
            if self.last_nonce is not None and (current_time - self.last_nonce_time) < 5:
                nonce = self.last_nonce + 1
            else:
                nonce = await asyncio.to_thread(self.w3.eth.get_transaction_count, self.sender, 'pending')

            self.last_nonce = nonce
            self.last_nonce_time = current_time
            return nonce

    def _decode_events(self, contract, module: str, receipt) -> List[LedgerEvent]:
        events = []
        for name in CONTRACT_EVENTS.get(module, []):
            for log in getattr(contract.events, name)().process_receipt(receipt, errors=DISCARD):
                events.append(LedgerEvent(type=f"{module}::{name}", data=dict(log['args'])))
        return events
