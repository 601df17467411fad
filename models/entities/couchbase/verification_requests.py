from typing import Literal, Optional
from datetime import datetime
from clients.couchbase import BaseModelCouchbase, BaseCouchbaseEntityData


VerificationStatus = Literal["pending", "in_review", "approved", "rejected"]


class VerificationRequestData(BaseCouchbaseEntityData):
    project_id: str
    developer_id: str
    status: VerificationStatus = "pending"
    progress: int = 0  # 0-100

    # Consensus
    required_approvals: int = 3
    approval_count: int = 0
    rejection_count: int = 0
    vote_count: int = 0  # approvals + rejections, abstentions excluded
    consensus_reached_at: Optional[datetime] = None
    resolution: Optional[Literal["votes", "deadline_policy"]] = None

    # Schedule
    submitted_at: Optional[datetime] = None
    assigned_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    voting_deadline: Optional[datetime] = None
    deadline_extended: bool = False
    original_deadline: Optional[datetime] = None


class VerificationRequest(BaseModelCouchbase[VerificationRequestData]):
    _collection_name = "verification_requests"
