import asyncio
import signal
from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from clients import tigerbeetle
from clients.couchbase import Database, check_connection, connect
from registry import conf
from registry.utils import log

from .assignment import ValidatorAssignmentEngine
from .audit import AuditTrail
from .consensus import ConsensusEngine
from .deadlines import DeadlineScheduler
from .journal import TransactionJournal
from .ledger import CreditLedger
from .scheduler import DeadlineJob
from .settlement import TigerBeetleSettlement
from .stores import (
    CouchbaseEventSink,
    CouchbaseLedgerStore,
    CouchbaseProjectLookup,
    CouchbaseUserLookup,
    CouchbaseVerificationStore,
)

logger = log.get_logger(__name__)


@dataclass
class Services:
    ledger: CreditLedger
    assignment: ValidatorAssignmentEngine
    consensus: ConsensusEngine
    deadlines: DeadlineScheduler
    deadline_job: DeadlineJob


def build_services(
    db: Database,
    consensus_conf: conf.ConsensusConf,
    ledger_conf: conf.LedgerConf,
    settlement: Optional[TigerBeetleSettlement] = None,
) -> Services:
    timeout = timedelta(seconds=ledger_conf.transaction_timeout_seconds)
    ledger_store = CouchbaseLedgerStore(db, transaction_timeout=timeout)
    verification_store = CouchbaseVerificationStore(db, transaction_timeout=timeout)
    users = CouchbaseUserLookup(db)
    audit = AuditTrail(CouchbaseEventSink(db))

    ledger = CreditLedger(
        ledger_store,
        CouchbaseProjectLookup(db),
        users,
        TransactionJournal(ledger_store),
        settlement=settlement,
    )
    consensus = ConsensusEngine(verification_store, audit)
    deadlines = DeadlineScheduler(verification_store, consensus, audit, consensus_conf)
    return Services(
        ledger=ledger,
        assignment=ValidatorAssignmentEngine(verification_store, users, audit, consensus_conf),
        consensus=consensus,
        deadlines=deadlines,
        deadline_job=DeadlineJob(deadlines, consensus_conf.deadline_check_interval_minutes),
    )


async def main() -> None:
    log.init(conf.get_log_level(), conf.get_environment())
    if not conf.validate():
        raise SystemExit(1)

    consensus_conf = conf.get_consensus_conf()
    settlement_conf = conf.get_settlement_conf()

    logger.info("Connecting to Couchbase...")
    couchbase_conf = conf.get_couchbase_conf()
    cluster = await connect(couchbase_conf)
    await check_connection(cluster)
    logger.info("Couchbase connection verified.")
    db = Database(cluster, couchbase_conf.bucket)

    settlement = None
    if settlement_conf.enabled:
        client = tigerbeetle.connect(settlement_conf.cluster_id, settlement_conf.address)
        settlement = TigerBeetleSettlement(client)
        logger.info(f"TigerBeetle settlement enabled ({settlement_conf.address})")
    else:
        logger.warning("TigerBeetle settlement is disabled (set SETTLEMENT_ENABLED to enable)")

    services = build_services(db, consensus_conf, conf.get_ledger_conf(), settlement)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    services.deadline_job.start()
    await services.deadline_job.trigger_now()
    try:
        await stop.wait()
    finally:
        logger.info("Shutting down...")
        services.deadline_job.shutdown()
        await cluster.close()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
