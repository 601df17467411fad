from typing import List, Optional

from clients.couchbase import Database
from models.entities.couchbase.validator_votes import ValidatorVote, ValidatorVoteData, vote_key


async def vote_cast(db: Database, data: ValidatorVoteData) -> Optional[ValidatorVote]:
    """Insert or replace a validator's vote. Returns None if the slot was auto-abstained."""
    key = vote_key(data.verification_id, data.validator_id)
    inserted = await ValidatorVote.insert_if_absent(db, key, data)
    if inserted:
        return inserted
    # Votes are never deleted and the sweep only inserts, so an existing
    # auto-abstention cannot appear between this read and the write below.
    existing = await ValidatorVote.get(db, key)
    if existing and existing.data.auto_abstained:
        return None
    return await ValidatorVote.create_or_update(db, key, data, user_id=data.validator_id)


async def vote_insert_if_absent(db: Database, data: ValidatorVoteData) -> Optional[ValidatorVote]:
    return await ValidatorVote.insert_if_absent(db, vote_key(data.verification_id, data.validator_id), data)


async def vote_list_for_verification(db: Database, verification_id: str) -> List[ValidatorVote]:
    return await ValidatorVote.find(
        db, where="verification_id = $verification_id", order_by="voted_at ASC", verification_id=verification_id
    )
