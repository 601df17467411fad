from clients.couchbase import Database
from models.entities.couchbase.verification_events import VerificationEvent, VerificationEventData


async def verification_event_create(db: Database, data: VerificationEventData) -> VerificationEvent:
    return await VerificationEvent.create(db, data, user_id=data.user_id)

