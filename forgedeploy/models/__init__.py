from .deployment import (
    SUCCESS_PATH,
    DeploymentRecord,
    DeploymentRequest,
    DeploymentResult,
    DeploymentStatus,
    ParsedRequest,
    StepRef,
    TokenMetadata,
    TokenParameters,
)
from .ledger_state import BuyRecord, FeeSplit, Lock, ProtectionConfig, RateState
