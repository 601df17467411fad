from typing import Literal, Optional
from clients.couchbase import BaseModelCouchbase, BaseCouchbaseEntityData


class ProjectData(BaseCouchbaseEntityData):
    developer_id: str
    name: str
    status: Literal["draft", "pending", "in_review", "verified", "rejected"] = "draft"
    emissions_target: Optional[float] = None  # tonnes CO2e
    country: Optional[str] = None


class Project(BaseModelCouchbase[ProjectData]):
    _collection_name = "projects"
