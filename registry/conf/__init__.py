from typing import Literal

from pydantic import BaseModel, model_validator

from clients.couchbase import CouchbaseConf
from registry.utils import env, log
from registry.utils.env import EnvVarSpec

logger = log.get_logger(__name__)

#### Types ####

ExpiryPolicy = Literal["reject", "keep_pending"]


class ConsensusConf(BaseModel):
    validator_count: int = 5
    required_approvals: int = 3
    voting_deadline_days: int = 4
    minimum_validators: int = 3
    deadline_check_interval_minutes: int = 60
    expiry_policy: ExpiryPolicy = "reject"

    @model_validator(mode="after")
    def _check_quorum(self) -> "ConsensusConf":
        if self.validator_count < 1:
            raise ValueError("VALIDATOR_COUNT must be at least 1")
        if self.required_approvals < 1:
            raise ValueError("REQUIRED_APPROVALS must be at least 1")
        if self.required_approvals > self.validator_count:
            raise ValueError("REQUIRED_APPROVALS cannot exceed VALIDATOR_COUNT")
        if self.minimum_validators < self.required_approvals:
            raise ValueError("MINIMUM_VALIDATORS must be at least equal to REQUIRED_APPROVALS")
        if self.voting_deadline_days < 1:
            raise ValueError("VOTING_DEADLINE_DAYS must be at least 1")
        return self


class LedgerConf(BaseModel):
    transaction_timeout_seconds: int = 15


class SettlementConf(BaseModel):
    enabled: bool = False
    cluster_id: int = 0
    address: str = "127.0.0.1:3000"

#### Env Vars ####

def _parse_bool(x: str) -> bool:
    return x.lower() == "true"

## Logging ##

LOG_LEVEL = EnvVarSpec(id="LOG_LEVEL", default="INFO")

ENVIRONMENT = EnvVarSpec(id="ENVIRONMENT", default="development")

## Couchbase ##

COUCHBASE_HOST = EnvVarSpec(id="COUCHBASE_HOST")
COUCHBASE_USERNAME = EnvVarSpec(id="COUCHBASE_USERNAME")
COUCHBASE_PASSWORD = EnvVarSpec(id="COUCHBASE_PASSWORD", is_secret=True)
COUCHBASE_BUCKET = EnvVarSpec(id="COUCHBASE_BUCKET")
COUCHBASE_PROTOCOL = EnvVarSpec(
    id="COUCHBASE_PROTOCOL",
    default="couchbase",
    type=(Literal["couchbase", "couchbases"], ...),
)

## Consensus ##

VALIDATOR_COUNT = EnvVarSpec(id="VALIDATOR_COUNT", default="5", parse=int, type=(int, ...))
REQUIRED_APPROVALS = EnvVarSpec(id="REQUIRED_APPROVALS", default="3", parse=int, type=(int, ...))
VOTING_DEADLINE_DAYS = EnvVarSpec(id="VOTING_DEADLINE_DAYS", default="4", parse=int, type=(int, ...))
MINIMUM_VALIDATORS = EnvVarSpec(id="MINIMUM_VALIDATORS", default="3", parse=int, type=(int, ...))

DEADLINE_CHECK_INTERVAL_MINUTES = EnvVarSpec(
    id="DEADLINE_CHECK_INTERVAL_MINUTES",
    default="60",
    parse=int,
    type=(int, ...),
)

DEADLINE_EXPIRY_POLICY = EnvVarSpec(
    id="DEADLINE_EXPIRY_POLICY",
    default="reject",
    type=(ExpiryPolicy, ...),
)

## Ledger ##

LEDGER_TRANSACTION_TIMEOUT_SECONDS = EnvVarSpec(
    id="LEDGER_TRANSACTION_TIMEOUT_SECONDS",
    default="15",
    parse=int,
    type=(int, ...),
)

## Settlement (TigerBeetle) ##

SETTLEMENT_ENABLED = EnvVarSpec(
    id="SETTLEMENT_ENABLED",
    default="false",
    parse=_parse_bool,
    type=(bool, ...),
)

TIGERBEETLE_CLUSTER_ID = EnvVarSpec(id="TIGERBEETLE_CLUSTER_ID", default="0", parse=int, type=(int, ...))

TIGERBEETLE_ADDRESS = EnvVarSpec(id="TIGERBEETLE_ADDRESS", default="127.0.0.1:3000")

#### Validation ####
VALIDATED_ENV_VARS = [
    LOG_LEVEL,
    ENVIRONMENT,
    COUCHBASE_HOST,
    COUCHBASE_USERNAME,
    COUCHBASE_PASSWORD,
    COUCHBASE_BUCKET,
    COUCHBASE_PROTOCOL,
    VALIDATOR_COUNT,
    REQUIRED_APPROVALS,
    VOTING_DEADLINE_DAYS,
    MINIMUM_VALIDATORS,
    DEADLINE_CHECK_INTERVAL_MINUTES,
    DEADLINE_EXPIRY_POLICY,
    LEDGER_TRANSACTION_TIMEOUT_SECONDS,
    SETTLEMENT_ENABLED,
    TIGERBEETLE_CLUSTER_ID,
    TIGERBEETLE_ADDRESS,
]

def validate() -> bool:
    if not env.validate(VALIDATED_ENV_VARS):
        return False
    try:
        get_consensus_conf()
    except ValueError as e:
        logger.error(f"Invalid consensus configuration: {e}")
        return False
    return True

#### Getters ####

def get_log_level() -> str:
    return env.parse(LOG_LEVEL)

def get_environment() -> str:
    return env.parse(ENVIRONMENT)

def get_couchbase_conf() -> CouchbaseConf:
    return CouchbaseConf(
        host=env.parse(COUCHBASE_HOST),
        username=env.parse(COUCHBASE_USERNAME),
        password=env.parse(COUCHBASE_PASSWORD),
        bucket=env.parse(COUCHBASE_BUCKET),
        protocol=env.parse(COUCHBASE_PROTOCOL),
    )

def get_consensus_conf() -> ConsensusConf:
    return ConsensusConf(
        validator_count=env.parse(VALIDATOR_COUNT),
        required_approvals=env.parse(REQUIRED_APPROVALS),
        voting_deadline_days=env.parse(VOTING_DEADLINE_DAYS),
        minimum_validators=env.parse(MINIMUM_VALIDATORS),
        deadline_check_interval_minutes=env.parse(DEADLINE_CHECK_INTERVAL_MINUTES),
        expiry_policy=env.parse(DEADLINE_EXPIRY_POLICY),
    )

def get_ledger_conf() -> LedgerConf:
    return LedgerConf(transaction_timeout_seconds=env.parse(LEDGER_TRANSACTION_TIMEOUT_SECONDS))

def get_settlement_conf() -> SettlementConf:
    return SettlementConf(
        enabled=env.parse(SETTLEMENT_ENABLED),
        cluster_id=env.parse(TIGERBEETLE_CLUSTER_ID),
        address=env.parse(TIGERBEETLE_ADDRESS),
    )
