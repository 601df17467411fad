import asyncio
import logging
from datetime import timedelta

from pydantic import BaseModel
from couchbase.auth import PasswordAuthenticator
from acouchbase.cluster import Cluster as AsyncCluster
from couchbase.options import ClusterOptions

logger = logging.getLogger(__name__)

VALID_PROTOCOLS = ('couchbase', 'couchbases')


class CouchbaseConf(BaseModel):
    username: str
    password: str
    host: str
    bucket: str
    protocol: str = "couchbase"

    @property
    def url(self) -> str:
        return self.protocol + "://" + self.host

    def errors(self) -> list[str]:
        errors = []
        if not self.username:
            errors.append("COUCHBASE_USERNAME is missing or empty")
        if not self.password:
            errors.append("COUCHBASE_PASSWORD is missing or empty")
        if not self.host:
            errors.append("COUCHBASE_HOST is missing or empty")
        if not self.bucket:
            errors.append("COUCHBASE_BUCKET is missing or empty")
        if self.protocol not in VALID_PROTOCOLS:
            errors.append(f"COUCHBASE_PROTOCOL '{self.protocol}' is invalid. Must be one of {VALID_PROTOCOLS}")
        return errors


def auth(conf: CouchbaseConf) -> PasswordAuthenticator:
    return PasswordAuthenticator(conf.username, conf.password)


async def connect(conf: CouchbaseConf, max_retries: int = 10, initial_delay: float = 1.0, max_delay: float = 30.0) -> AsyncCluster:
    """
    Opens a Couchbase cluster connection.
    Retries with exponential backoff for startup race conditions.
    The caller owns the returned cluster and passes it to whatever needs it.
    """
    errors = conf.errors()
    if errors:
        raise ValueError("Invalid Couchbase Configuration:\n" + "\n".join(errors))

    delay = initial_delay
    cluster = None
    for attempt in range(1, max_retries + 1):
        try:
            cluster = await AsyncCluster.connect(conf.url, ClusterOptions(auth(conf)))
            break
        except Exception as e:
            if attempt == max_retries:
                raise
            logger.warning(f"Couchbase connect attempt {attempt}/{max_retries} failed: {e}")
            await asyncio.sleep(delay)
            delay = min(delay * 2, max_delay)  # Exponential backoff with cap

    await cluster.wait_until_ready(timedelta(seconds=50))
    return cluster


async def check_connection(cluster: AsyncCluster):
    """
    Explicitly checks the connection to the Couchbase cluster.
    Useful for startup checks.
    """
    await cluster.ping()
