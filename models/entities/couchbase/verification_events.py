from clients.couchbase import BaseModelCouchbase, BaseCouchbaseEntityData


class VerificationEventData(BaseCouchbaseEntityData):
    verification_id: str
    event_type: str
    message: str
    user_id: str
    metadata: dict = {}


class VerificationEvent(BaseModelCouchbase[VerificationEventData]):
    _collection_name = "verification_events"
