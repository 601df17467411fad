from dataclasses import dataclass, field
from typing import Any
from couchbase.result import MutationResult
from couchbase.options import QueryOptions


@dataclass
class Keyspace:
    bucket_name: str
    scope_name: str
    collection_name: str
    cluster: Any = field(default=None, repr=False, compare=False)

    def __str__(self) -> str:
        return f"{self.bucket_name}.{self.scope_name}.{self.collection_name}"

    async def query(self, query: str, **kwargs) -> list:
        query = query.replace("${keyspace}", str(self))
        options = QueryOptions(named_parameters=kwargs) if kwargs else QueryOptions()
        result = self.cluster.query(query, options)
        return [row async for row in result]

    def get_scope(self):
        bucket = self.cluster.bucket(self.bucket_name)
        return bucket.scope(self.scope_name)

    def get_collection(self):
        return self.get_scope().collection(self.collection_name)

    async def get(self, key: str, **kwargs):
        return await self.get_collection().get(key, **kwargs)

    async def insert(self, key: str, value: dict, **kwargs) -> MutationResult:
        """Create a document; raises ``DocumentExistsException`` when the key is taken."""
        return await self.get_collection().insert(key, value, **kwargs)

    async def upsert(self, key: str, value: dict, **kwargs) -> MutationResult:
        return await self.get_collection().upsert(key, value, **kwargs)

    async def replace(self, key: str, value: dict, **kwargs) -> MutationResult:
        return await self.get_collection().replace(key, value, **kwargs)

