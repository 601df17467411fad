from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Awaitable, Callable, Optional

from couchbase.exceptions import TransactionFailed
from couchbase.options import TransactionOptions

from .keyspace import Keyspace


@dataclass
class Database:
    """A connected cluster plus the bucket/scope the application lives in.

    Built once at process start and handed to every store that needs it.
    """
    cluster: Any
    bucket_name: str
    scope_name: str = "_default"

    def keyspace(self, collection_name: str) -> Keyspace:
        return Keyspace(self.bucket_name, self.scope_name, collection_name, cluster=self.cluster)

    async def run_transaction(
        self,
        logic: Callable[[Any], Awaitable[None]],
        timeout: Optional[timedelta] = None,
    ):
        """Run *logic* inside a Couchbase ACID transaction.

        The SDK re-runs *logic* on write-write conflicts, so it must be safe
        to repeat. An exception raised by *logic* rolls the attempt back and
        is re-raised here unwrapped from ``TransactionFailed``.
        """
        options = TransactionOptions(timeout=timeout) if timeout else None
        try:
            if options:
                return await self.cluster.transactions.run(logic, options)
            return await self.cluster.transactions.run(logic)
        except TransactionFailed as e:
            cause = getattr(e, "inner_cause", None)
            if isinstance(cause, Exception):
                raise cause from e
            raise
