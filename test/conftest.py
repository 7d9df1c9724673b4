import pytest

from forgedeploy.assembler import MetadataAssembler
from forgedeploy.clock import ManualClock
from forgedeploy.config import DAY
from forgedeploy.database import DeploymentDatabase
from forgedeploy.escrow import LiquidityLockEscrow
from forgedeploy.fees import FeeRouter
from forgedeploy.models import TokenParameters
from forgedeploy.orchestrator import DeploymentOrchestrator
from forgedeploy.protection import ProtectionEngine
from forgedeploy.services import LocalLedger

from stubs import RecordingNotifier, StubContentService, StubImageService

DEPLOYER = 'forge-deployer'
ADMIN = 'protocol-admin'


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def protection(clock):
    return ProtectionEngine(clock)


@pytest.fixture
def escrow(clock):
    return LiquidityLockEscrow(clock, min_lock_duration=30 * DAY)


@pytest.fixture
def fees():
    return FeeRouter(ADMIN, protocol_bps=200, creator_bps=800)


@pytest.fixture
def ledger(clock, protection, escrow, fees):
    ledger = LocalLedger(clock, protection, escrow, fees, sender=DEPLOYER)
    ledger.faucet(DEPLOYER, 10 ** 15)
    return ledger


@pytest.fixture
def assembler():
    return MetadataAssembler(content_service=StubContentService(), image_service=StubImageService())


@pytest.fixture
def db(tmp_path):
    return DeploymentDatabase(str(tmp_path / 'deployments.db'))


@pytest.fixture
def orchestrator(ledger, assembler, clock, db):
    return DeploymentOrchestrator(ledger, assembler, clock, database=db)


@pytest.fixture
def params():
    return TokenParameters(name='CatMoon', symbol='CMON', theme='rocket cat', emoji='🐱')


@pytest.fixture
def notifier():
    return RecordingNotifier()
