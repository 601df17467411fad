import uuid
from datetime import datetime, timezone
from typing import Any, ClassVar, Dict, Generic, List, Optional, TypeVar
from pydantic import BaseModel, ConfigDict
from couchbase.exceptions import DocumentExistsException, DocumentNotFoundException
from couchbase.options import ReplaceOptions
from .database import Database
from .keyspace import Keyspace


class BaseCouchbaseEntityData(BaseModel):
    model_config = ConfigDict(frozen=True)

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    created_by_user_id: Optional[str] = None

DataT = TypeVar("DataT", bound=BaseCouchbaseEntityData)
T = TypeVar("T", bound="BaseModelCouchbase")


def _stamp(data: DataT, now: datetime, user_id: Optional[str] = None) -> DataT:
    update: Dict[str, Any] = {"updated_at": now}
    if data.created_at is None:
        update["created_at"] = now
    if user_id:
        update["created_by_user_id"] = user_id
    return data.model_copy(update=update)


class BaseModelCouchbase(BaseModel, Generic[DataT]):
    model_config = ConfigDict(frozen=True)

    id: str
    data: DataT
    cas: Optional[int] = None

    _collection_name: ClassVar[str] = ""

    @staticmethod
    def model_dump_with_excluded_attributes(data: DataT) -> dict:
        """
        Converts the model to a dictionary for database storage,
        ensuring fields marked with exclude=True are included.
        """
        doc = data.model_dump(mode='json')
        for field_name, field_info in type(data).model_fields.items():
            if field_info.exclude:
                value = getattr(data, field_name)
                if value is not None:
                    doc[field_name] = value
        return doc

    @classmethod
    def get_keyspace(cls, db: Database) -> Keyspace:
        if not cls._collection_name:
            raise ValueError(f"_collection_name not set for {cls.__name__}")
        return db.keyspace(cls._collection_name)

    @classmethod
    def from_row(cls: type[T], row: dict) -> Optional[T]:
        # Row structure: {'id': '...', '<collection_name>': {...}}
        data_dict = row.get(cls._collection_name)
        if not data_dict:
            return None
        return cls(id=row["id"], data=data_dict)

    def with_data(self: T, data: DataT) -> T:
        return self.model_copy(update={"data": data})

    @classmethod
    async def get(cls: type[T], db: Database, id: str) -> Optional[T]:
        try:
            result = await cls.get_keyspace(db).get(id)
            return cls(id=id, data=result.content_as[dict], cas=result.cas)
        except DocumentNotFoundException:
            return None

    @classmethod
    async def create(cls: type[T], db: Database, data: DataT, key: Optional[str] = None, user_id: Optional[str] = None) -> T:
        if key is None:
            key = str(uuid.uuid4())
        data = _stamp(data, datetime.now(timezone.utc), user_id)
        doc = cls.model_dump_with_excluded_attributes(data)
        result = await cls.get_keyspace(db).insert(key, doc)
        return cls(id=key, data=data, cas=result.cas)

    @classmethod
    async def insert_if_absent(cls: type[T], db: Database, key: str, data: DataT) -> Optional[T]:
        """Insert under a deterministic key; returns None when the key is taken."""
        try:
            return await cls.create(db, data, key=key)
        except DocumentExistsException:
            return None

    @classmethod
    async def create_or_update(cls: type[T], db: Database, key: str, data: DataT, user_id: Optional[str] = None) -> T:
        """Idempotently create or update a document with a specific key.

        If the document exists it is replaced, otherwise it is created.
        """
        data = _stamp(data, datetime.now(timezone.utc), user_id)
        doc = cls.model_dump_with_excluded_attributes(data)
        result = await cls.get_keyspace(db).upsert(key, doc)
        return cls(id=key, data=data, cas=result.cas)

    @classmethod
    async def update(cls: type[T], db: Database, item: T) -> T:
        """Replace the stored document, guarded by CAS when the item carries one.

        Raises ``CASMismatchException`` when someone else wrote first.
        """
        data = _stamp(item.data, datetime.now(timezone.utc))
        doc = cls.model_dump_with_excluded_attributes(data)
        keyspace = cls.get_keyspace(db)
        if item.cas:
            result = await keyspace.replace(item.id, doc, ReplaceOptions(cas=item.cas))
        else:
            result = await keyspace.replace(item.id, doc)
        return item.model_copy(update={"data": data, "cas": result.cas})

    @classmethod
    async def find(
        cls: type[T],
        db: Database,
        where: str = "1=1",
        order_by: str = "created_at DESC",
        limit: Optional[int] = None,
        offset: int = 0,
        **params,
    ) -> List[T]:
        keyspace = cls.get_keyspace(db)
        query = f"SELECT META().id, * FROM {keyspace} WHERE {where} ORDER BY {order_by}"
        if limit is not None:
            query += f" LIMIT {int(limit)} OFFSET {int(offset)}"
        rows = await keyspace.query(query, **params)
        return [item for item in (cls.from_row(row) for row in rows) if item is not None]

    @classmethod
    async def count(cls, db: Database, where: str = "1=1", **params) -> int:
        keyspace = cls.get_keyspace(db)
        rows = await keyspace.query(f"SELECT COUNT(*) AS n FROM {keyspace} WHERE {where}", **params)
        return int(rows[0]["n"]) if rows else 0

    # ------------------------------------------------------------------
    # Inside a transaction (ctx is an acouchbase AttemptContext)
    # ------------------------------------------------------------------

    @classmethod
    async def txn_get(cls: type[T], ctx: Any, db: Database, id: str) -> Optional[tuple[T, Any]]:
        """Read a document inside a transaction.

        Returns the model and the SDK result needed for a later ``txn_replace``.
        """
        try:
            result = await ctx.get(cls.get_keyspace(db).get_collection(), id)
        except DocumentNotFoundException:
            return None
        return cls(id=id, data=result.content_as[dict]), result

    @classmethod
    async def txn_insert(cls: type[T], ctx: Any, db: Database, item: T) -> T:
        data = _stamp(item.data, datetime.now(timezone.utc))
        doc = cls.model_dump_with_excluded_attributes(data)
        await ctx.insert(cls.get_keyspace(db).get_collection(), item.id, doc)
        return item.with_data(data)

    @classmethod
    async def txn_replace(cls: type[T], ctx: Any, got: Any, item: T) -> T:
        data = _stamp(item.data, datetime.now(timezone.utc))
        doc = cls.model_dump_with_excluded_attributes(data)
        await ctx.replace(got, doc)
        return item.with_data(data)
