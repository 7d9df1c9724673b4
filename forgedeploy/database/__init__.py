from .deployment_db import DeploymentDatabase
from .state_store import KeyedStateStore
