#!/usr/bin/env python3
"""
Forge Token Deployer
Deploy a meme token, its anti-bot protection, fee routing and locked
liquidity when someone asks for it on a social channel.

Usage:
  Mention: "@SuiForge create a rocket cat token called CatMoon with symbol CMON"
  Result:  token created, protected, fee-configured, liquidity added and locked

Run:
  python forge_token_deployer.py          # read JSON events, one per line, from stdin
  python forge_token_deployer.py --test   # deploy one sample request
"""

import asyncio
import json
import re
import sys
import time
from typing import Dict, Optional, Set

from forgedeploy.admission import Decision, RequestGate
from forgedeploy.assembler import MetadataAssembler
from forgedeploy.clock import SystemClock
from forgedeploy.config import Settings
from forgedeploy.database import DeploymentDatabase
from forgedeploy.errors import ValidationError
from forgedeploy.escrow import LiquidityLockEscrow
from forgedeploy.fees import FeeRouter
from forgedeploy.log import setup_logging
from forgedeploy.models import DeploymentRequest, DeploymentResult
from forgedeploy.normalizer import normalize
from forgedeploy.orchestrator import DeploymentOrchestrator
from forgedeploy.protection import ProtectionEngine
from forgedeploy.services import (
    ImageGenerationService,
    IPFSService,
    LocalLedger,
    OpenAIContentService,
    RegexRequestParser,
    TelegramNotifier,
    compose_reply,
)

# Local ledger runs start the deployer with quote funds for this many launches
LOCAL_FAUCET_DEPLOYS = 1000

# Rejections that are chatter rather than failed attempts get no reply
SILENT_REASONS = {'duplicate', 'text_too_short', 'not_a_request'}


def clean_mention_text(text: str) -> str:
    """Drop @handles and collapse whitespace"""
    return re.sub(r'\s+', ' ', re.sub(r'@\w+', '', text)).strip()


class ForgeTokenDeployer:

    def __init__(self, settings: Optional[Settings] = None, clock=None, parser=None,
                 content_service=None, image_service=None, ipfs_service=None,
                 ledger=None, notifier=None, notifiers: Optional[Dict] = None,
                 db_path: str = 'deployments.db'):
        """Initialize the deployer; collaborators not passed in are built from settings"""
        self.settings = settings or Settings.from_env()
        self.logger = setup_logging()
        self.clock = clock or SystemClock()
        settings = self.settings

        # On-chain state engines
        self.protection = ProtectionEngine(self.clock)
        self.escrow = LiquidityLockEscrow(self.clock, settings.min_lock_duration)
        self.fees = FeeRouter(settings.fee_admin, settings.protocol_fee_bps, settings.creator_fee_bps)

        if ledger is None:
            ledger = self._build_ledger()
        self.ledger = ledger

        # AI collaborators when a key is configured, offline fallbacks otherwise
        ai_service = None
        if settings.openai_api_key:
            ai_service = OpenAIContentService(
                settings.openai_api_key, settings.openai_model, settings.openai_base_url, settings.content_timeout
            )
        self.parser = parser or ai_service or RegexRequestParser()
        if content_service is None:
            content_service = ai_service
        if image_service is None and settings.openai_api_key:
            image_service = ImageGenerationService(
                settings.openai_api_key, settings.openai_base_url, timeout=settings.image_timeout
            )
        if ipfs_service is None:
            candidate = IPFSService.from_settings(settings)
            ipfs_service = candidate if candidate.configured else None

        self.db = DeploymentDatabase(db_path)
        self.gate = RequestGate(
            self.clock,
            max_requests=settings.rate_max_requests,
            time_window=settings.rate_time_window,
            cooldown=settings.rate_cooldown,
            dedup_ttl=settings.dedup_ttl,
        )
        self.assembler = MetadataAssembler.from_settings(settings, content_service, image_service, ipfs_service)
        self.orchestrator = DeploymentOrchestrator.from_settings(
            settings, self.ledger, self.assembler, self.clock, database=self.db
        )
        # Reply senders keyed by event source; `notifier` answers sources without their own
        self.notifier = notifier
        if notifiers is None and notifier is None:
            notifiers = {
                'telegram': TelegramNotifier(
                    settings.telegram_bot_token, settings.telegram_channel_id,
                    settings.telegram_notifications_enabled,
                ),
            }
        self.notifiers = dict(notifiers or {})

        self._tasks: Set[asyncio.Task] = set()
        self.logger.info(f"Forge deployer ready ({settings.env}, {settings.ledger_mode} ledger)")

    def _build_ledger(self):
        settings = self.settings
        if settings.ledger_mode == 'web3':
            from forgedeploy.services.ledger import Web3LedgerClient
            return Web3LedgerClient(settings)

        ledger = LocalLedger(self.clock, self.protection, self.escrow, self.fees, sender=settings.deployer_address)
        ledger.faucet(settings.deployer_address, settings.liquidity_quote_amount * LOCAL_FAUCET_DEPLOYS)
        return ledger

    async def process_mention(self, event: Dict) -> DeploymentResult:
        """Process one inbound mention/message and potentially deploy a token

        Args:
            event: Dict containing:
                - source: twitter, telegram, farcaster or api
                - event_id: id of the message within its source
                - actor_id: who sent it
                - text: raw message text
                - received_at: unix seconds (optional, defaults to now)
        """
        source = event.get('source', 'api')
        event_id = str(event['event_id'])
        actor_id = str(event['actor_id'])
        text = clean_mention_text(event.get('text', ''))

        if len(text) < self.settings.min_text_length:
            self.logger.info(f"Skipping {source}:{event_id}: text too short after removing mentions")
            return DeploymentResult.rejected('text_too_short')

        admission = self.gate.admit(source, event_id, actor_id.lower())
        if admission.decision == Decision.DUPLICATE:
            return DeploymentResult.rejected('duplicate')
        if admission.decision == Decision.RATE_LIMITED:
            result = DeploymentResult.rejected('rate_limited', retry_after=admission.retry_after)
            await self._notify(result, source)
            return result

        request = DeploymentRequest(
            source=source,
            actor_id=actor_id,
            raw_text=text,
            received_at=int(event.get('received_at') or self.clock.now()),
            event_id=event_id,
        )
        self.logger.info(f"Processing {source} request {request.request_id} from {actor_id}: {text}")

        try:
            parsed = await self.parser.parse(text)
        except Exception as e:
            self.logger.error(f"Parser failed on request {request.request_id}: {e}")
            result = DeploymentResult.rejected('parse_failed', request.request_id)
            await self._notify(result, source)
            return result

        try:
            params = normalize(parsed, self.settings.confidence_threshold)
        except ValidationError as e:
            self.logger.info(f"Rejected request {request.request_id}: {e.reason} ({e})")
            result = DeploymentResult.rejected(e.reason, request.request_id)
            await self._notify(result, source)
            return result

        self.db.save_request(request, params.name, params.symbol)
        record = await self.orchestrator.deploy(request.request_id, params)
        result = self.orchestrator.to_result(record)

        if result.success:
            self.logger.info(f"Deployed ${params.symbol} for {actor_id}: {result.token_id}")
        else:
            self.logger.error(f"Deployment of ${params.symbol} for {actor_id} failed at {result.step}: {result.reason}")

        await self._notify(result, source)
        return result

    def submit_event(self, event: Dict) -> asyncio.Task:
        """Handle an event as its own task"""
        task = asyncio.create_task(self.process_mention(event))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def drain(self):
        """Wait for every submitted event to finish"""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _notify(self, result: DeploymentResult, source: str) -> bool:
        """Reply on the channel the request came from"""
        if result.reason in SILENT_REASONS and not result.success:
            return False
        sender = self.notifiers.get(source, self.notifier)
        if sender is None:
            # the caller relays the returned DeploymentResult itself
            self.logger.debug(f"No reply channel for {source}; result returned to caller")
            return False
        text = compose_reply(
            result,
            explorer_url=self.settings.explorer_url,
            trade_url=self.settings.trade_url,
            lock_period=self.settings.lock_period,
        )
        return await asyncio.to_thread(sender.send, text)

    def get_deployment_stats(self) -> Dict:
        """Get deployment statistics"""
        stats = self.db.get_deployment_stats()
        stats['active_deployments'] = len(self._tasks)
        # escrow and fee balances live on chain in web3 mode
        if self.settings.ledger_mode == 'local':
            stats['total_locked'] = self.escrow.total_locked()
            stats['protocol_fees'] = self.fees.balance_of()
        return stats

    async def run_stdin(self):
        """Read JSON events line by line until EOF"""
        print("👂 Waiting for events on stdin (one JSON object per line)")
        while True:
            line = await asyncio.to_thread(sys.stdin.readline)
            if not line:
                break
            line = line.strip()
            if not line:
                continue
            try:
                event = json.loads(line)
            except json.JSONDecodeError as e:
                self.logger.error(f"Skipping malformed event: {e}")
                continue
            task = self.submit_event(event)
            task.add_done_callback(_print_result)
        await self.drain()


def _print_result(task: asyncio.Task):
    if task.cancelled():
        return
    if task.exception() is not None:
        print(f"❌ Error: {task.exception()}")
        return
    print(json.dumps(task.result().to_dict()))


async def main(mode: str = "stdin"):
    """Main function

    Args:
        mode: 'test' deploys one sample request, 'stdin' (default) serves events from stdin
    """
    deployer = ForgeTokenDeployer()

    if mode == "test":
        test_event = {
            'source': 'api',
            'event_id': f"test-{int(time.time())}",
            'actor_id': 'testuser',
            'text': '@SuiForge create a rocket cat token called CatMoon with symbol CMON',
        }

        print(f"\n🧪 TESTING DEPLOYMENT")
        print(f"📝 Text: {test_event['text']}")

        if deployer.settings.ledger_mode == 'web3':
            confirm = input("\n⚠️  This will deploy a real token! Continue? (y/N): ")
            if confirm.lower() != 'y':
                print("❌ Deployment cancelled")
                return

        result = await deployer.process_mention(test_event)
        print(f"\n📋 Result: {json.dumps(result.to_dict(), indent=2)}")
        print(f"\n{compose_reply(result, deployer.settings.explorer_url, deployer.settings.trade_url, deployer.settings.lock_period)}")

        stats = deployer.get_deployment_stats()
        print(f"\n📊 DEPLOYMENT STATS:")
        print(f"   24h Requests: {stats['total_requests_24h']}")
        print(f"   24h Successful: {stats['successful_deploys_24h']}")
        print(f"   24h Failed: {stats['failed_deploys_24h']}")
        if 'total_locked' in stats:
            print(f"   LP Locked: {stats['total_locked']}")

    else:
        try:
            await deployer.run_stdin()
        except KeyboardInterrupt:
            print("\n👋 Deployer stopped by user")


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "--test":
        print("🧪 FORGE TEST MODE")
        asyncio.run(main("test"))
    else:
        asyncio.run(main("stdin"))
