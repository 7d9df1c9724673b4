"""
Deployment orchestrator

Drives one DeploymentRecord through

    pending -> metadata_ready -> deployed -> protected -> fee_configured
            -> liquidity_provided -> liquidity_locked

awaiting each step before starting the next. Any step failure (error or
timeout) moves the record to failed with the step name; steps already
committed on the ledger are left as they are.
"""

import asyncio
import logging
import sqlite3
from typing import Any, Dict, Optional, Set

from forgedeploy.assembler import metadata_digest
from forgedeploy.database import KeyedStateStore
from forgedeploy.errors import CollaboratorError, StateConflict
from forgedeploy.models import DeploymentRecord, DeploymentResult, DeploymentStatus, TokenParameters
from forgedeploy.services.ledger import LedgerCall, SubmitResult

logger = logging.getLogger(__name__)

STEP_METADATA = 'metadata'
STEP_CREATE_TOKEN = 'create_token'
STEP_PROTECTION = 'protection'
STEP_FEE_CONFIG = 'fee_config'
STEP_LIQUIDITY = 'liquidity'
STEP_LOCK = 'lock'

STEPS = [STEP_METADATA, STEP_CREATE_TOKEN, STEP_PROTECTION, STEP_FEE_CONFIG, STEP_LIQUIDITY, STEP_LOCK]


class DeploymentOrchestrator:

    def __init__(self, ledger, assembler, clock, *, decimals: int = 9,
                 max_supply: int = 1_000_000_000_000, initial_supply: int = 500_000_000_000,
                 cooldown_period: int = 300, max_buy_percent_bps: int = 500, enable_delay: int = 300,
                 liquidity_token_amount: int = 1_000_000_000, liquidity_quote_amount: int = 50_000_000_000,
                 lock_duration: int = 30 * 86_400, ledger_timeout: float = 300.0,
                 metadata_timeout: float = 120.0, store: Optional[KeyedStateStore] = None, database=None):
        self.ledger = ledger
        self.assembler = assembler
        self.clock = clock
        self.decimals = decimals
        self.max_supply = max_supply
        self.initial_supply = initial_supply
        self.cooldown_period = cooldown_period
        self.max_buy_percent_bps = max_buy_percent_bps
        self.enable_delay = enable_delay
        self.liquidity_token_amount = liquidity_token_amount
        self.liquidity_quote_amount = liquidity_quote_amount
        self.lock_duration = lock_duration
        self.ledger_timeout = ledger_timeout
        self.metadata_timeout = metadata_timeout
        self.store = store if store is not None else KeyedStateStore('deployments')
        self.database = database
        self._in_flight: Set[str] = set()

    @classmethod
    def from_settings(cls, settings, ledger, assembler, clock, store=None, database=None):
        return cls(
            ledger, assembler, clock,
            decimals=settings.decimals,
            max_supply=settings.max_supply,
            initial_supply=settings.initial_supply,
            cooldown_period=settings.cooldown_period,
            max_buy_percent_bps=settings.max_buy_percent_bps,
            enable_delay=settings.enable_delay,
            liquidity_token_amount=settings.liquidity_token_amount,
            liquidity_quote_amount=settings.liquidity_quote_amount,
            lock_duration=settings.lock_duration,
            ledger_timeout=settings.ledger_timeout,
            # content and image calls are bounded inside the assembler; leave room for pinning
            metadata_timeout=settings.content_timeout + settings.image_timeout + 30,
            store=store,
            database=database,
        )

    async def deploy(self, request_id: str, params: TokenParameters) -> DeploymentRecord:
        """Run every step for one request; returns the record in a terminal state

        Raises:
            StateConflict: the request is already being (or was) orchestrated
        """
        if request_id in self._in_flight:
            raise StateConflict(f"Deployment {request_id} is already in flight", reason='in_flight')
        if request_id in self.store:
            raise StateConflict(f"Deployment {request_id} was already orchestrated", reason='already_orchestrated')

        self._in_flight.add(request_id)
        try:
            record = DeploymentRecord(request_id=request_id)
            self.store.put(request_id, record)
            logger.info(f"Deploying ${params.symbol} ({params.name}) for request {request_id}")
            await self._run(record, params)
            return record
        finally:
            self._in_flight.discard(request_id)

    async def _run(self, record: DeploymentRecord, params: TokenParameters) -> None:
        step = STEP_METADATA
        try:
            metadata = await asyncio.wait_for(self.assembler.assemble(params), self.metadata_timeout)
            record.artifacts['metadata'] = metadata
            self._advance(record, step, DeploymentStatus.METADATA_READY,
                          metadata.metadata_uri or metadata_digest(metadata))

            step = STEP_CREATE_TOKEN
            result = await self._submit(LedgerCall('token_factory', 'create_token', {
                'name': metadata.name,
                'symbol': metadata.symbol,
                'description': metadata.description,
                'image_url': metadata.image_ref or '',
                'decimals': self.decimals,
                'max_supply': self.max_supply,
                'initial_supply': self.initial_supply,
            }))
            record.token_id = str(_event_data(result, 'TokenCreated', step)['token_id'])
            self._advance(record, step, DeploymentStatus.DEPLOYED, result.tx_ref)

            step = STEP_PROTECTION
            result = await self._submit(LedgerCall('anti_bot', 'create_protection', {
                'token_id': record.token_id,
                'cooldown_period': self.cooldown_period,
                'max_buy_percent_bps': self.max_buy_percent_bps,
                'enable_delay': self.enable_delay,
            }))
            protection = _event_data(result, 'ProtectionCreated', step)
            record.artifacts['enable_time'] = protection.get('enable_time')
            self._advance(record, step, DeploymentStatus.PROTECTED, result.tx_ref)

            step = STEP_FEE_CONFIG
            result = await self._submit(LedgerCall('fee_distributor', 'create_token_fee_config', {
                'token_id': record.token_id,
                'creator': self.ledger.sender,
            }))
            self._advance(record, step, DeploymentStatus.FEE_CONFIGURED, result.tx_ref)

            step = STEP_LIQUIDITY
            result = await self._submit(LedgerCall('dex', 'provide_liquidity', {
                'token_id': record.token_id,
                'token_amount': self.liquidity_token_amount,
                'quote_amount': self.liquidity_quote_amount,
            }))
            liquidity = _event_data(result, 'LiquidityProvided', step)
            record.artifacts['pool_id'] = str(liquidity['pool_id'])
            record.artifacts['lp_type'] = liquidity['lp_type']
            record.artifacts['lp_amount'] = liquidity['lp_amount']
            self._advance(record, step, DeploymentStatus.LIQUIDITY_PROVIDED, result.tx_ref)

            step = STEP_LOCK
            result = await self._submit(LedgerCall('liquidity_locker', 'lock_liquidity', {
                'lp_type': liquidity['lp_type'],
                'amount': liquidity['lp_amount'],
                'duration': self.lock_duration,
            }))
            locked = _event_data(result, 'LiquidityLocked', step)
            record.artifacts['lock_id'] = str(locked['lock_id'])
            record.artifacts['unlock_time'] = int(locked['unlock_time'])
            self._advance(record, step, DeploymentStatus.LIQUIDITY_LOCKED, result.tx_ref)

        except asyncio.TimeoutError:
            timeout = self.metadata_timeout if step == STEP_METADATA else self.ledger_timeout
            self._fail(record, step, f"{step} timed out after {timeout:g}s", 'timeout')
        except Exception as e:
            self._fail(record, step, str(e) or e.__class__.__name__, getattr(e, 'reason', 'error'))
        else:
            logger.info(
                f"Deployment {record.request_id} complete: ${params.symbol} at {record.token_id}, "
                f"LP locked until {record.artifacts['unlock_time']}"
            )

    async def _submit(self, call: LedgerCall) -> SubmitResult:
        logger.debug(f"Submitting {call.target}")
        return await asyncio.wait_for(self.ledger.submit(call), self.ledger_timeout)

    def _advance(self, record: DeploymentRecord, step: str, status: DeploymentStatus, tx_ref: Optional[str]) -> None:
        with self.store.locked(record.request_id):
            record.advance(step, status, tx_ref, self.clock.now())
        logger.info(f"Deployment {record.request_id}: {step} -> {status.value} ({tx_ref})")
        self._persist(record)

    def _fail(self, record: DeploymentRecord, step: str, error: str, reason: str) -> None:
        with self.store.locked(record.request_id):
            record.fail(step, error, self.clock.now())
            record.artifacts['failure_reason'] = reason
        logger.error(f"Deployment {record.request_id} failed at {step}: {error}")
        self._persist(record)

    def _persist(self, record: DeploymentRecord) -> None:
        if self.database is None:
            return
        try:
            self.database.record_transition(record, record.transaction_refs[-1])
        except sqlite3.Error as e:
            logger.error(f"Failed to persist transition for {record.request_id}: {e}")

    def get_record(self, request_id: str) -> Optional[DeploymentRecord]:
        return self.store.get(request_id)

    @staticmethod
    def to_result(record: DeploymentRecord) -> DeploymentResult:
        succeeded = record.status == DeploymentStatus.LIQUIDITY_LOCKED
        return DeploymentResult(
            success=succeeded,
            request_id=record.request_id,
            token_id=record.token_id,
            tx_ref=record.tx_ref_for(STEP_CREATE_TOKEN),
            reason=None if succeeded else record.last_error,
            step=record.failed_step,
            pool_id=record.artifacts.get('pool_id'),
            lock_id=record.artifacts.get('lock_id'),
            unlock_time=record.artifacts.get('unlock_time'),
            metadata=record.artifacts.get('metadata'),
        )


def _event_data(result: SubmitResult, name: str, step: str) -> Dict[str, Any]:
    event = result.find_event(name)
    if event is None:
        raise CollaboratorError(f"Transaction {result.tx_ref} emitted no {name} event", reason='missing_event', step=step)
    return event.data
