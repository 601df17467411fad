from typing import Optional

from models.entities.couchbase.verification_events import VerificationEventData
from registry.utils import log

from .store import EventSink

logger = log.get_logger(__name__)


class AuditTrail:
    """Records verification events. A failing sink never fails the caller."""

    def __init__(self, sink: EventSink):
        self.sink = sink

    async def record(
        self,
        verification_id: str,
        event_type: str,
        message: str,
        user_id: str,
        metadata: Optional[dict] = None,
    ) -> None:
        event = VerificationEventData(
            verification_id=verification_id,
            event_type=event_type,
            message=message,
            user_id=user_id,
            metadata=metadata or {},
        )
        try:
            await self.sink.record(event)
        except Exception as e:
            logger.error(f"Audit: failed to record {event_type} for verification {verification_id}: {e}", exc_info=True)
