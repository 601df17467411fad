from typing import List, Optional, Sequence

from clients.couchbase import Database
from models.entities.couchbase.users import User


async def user_get(db: Database, user_id: str) -> Optional[User]:
    return await User.get(db, user_id)


async def user_get_by_roles(db: Database, roles: Sequence[str]) -> List[User]:
    return await User.find(db, where="role IN $roles", order_by="created_at ASC", roles=list(roles))
