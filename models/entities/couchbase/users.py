from typing import Literal, Optional
from clients.couchbase import BaseModelCouchbase, BaseCouchbaseEntityData


UserRole = Literal["developer", "verifier", "administrator", "buyer"]


class UserData(BaseCouchbaseEntityData):
    email: str
    name: Optional[str] = None
    role: UserRole = "buyer"
    email_verified: bool = False
    wallet_address: Optional[str] = None


class User(BaseModelCouchbase[UserData]):
    _collection_name = "users"
