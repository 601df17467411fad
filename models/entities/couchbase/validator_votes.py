from typing import Literal, Optional
from datetime import datetime
from clients.couchbase import BaseModelCouchbase, BaseCouchbaseEntityData


VoteDecision = Literal["approve", "reject", "abstain"]


def vote_key(verification_id: str, validator_id: str) -> str:
    # One document per (verification, validator); re-voting overwrites it.
    return f"{verification_id}::{validator_id}"


class ValidatorVoteData(BaseCouchbaseEntityData):
    verification_id: str
    validator_id: str
    vote: VoteDecision
    notes: Optional[str] = None
    proof: Optional[str] = None  # wallet signature or on-chain tx hash
    wallet_address: Optional[str] = None
    auto_abstained: bool = False
    voted_at: datetime


class ValidatorVote(BaseModelCouchbase[ValidatorVoteData]):
    _collection_name = "validator_votes"
