from typing import Optional

from clients.couchbase import Database
from models.entities.couchbase.projects import Project


async def project_get(db: Database, project_id: str) -> Optional[Project]:
    return await Project.get(db, project_id)


async def project_sequence(db: Database, project_id: str) -> int:
    """1-based position of the project by creation time."""
    project = await Project.get(db, project_id)
    if not project:
        raise ValueError(f"Project with ID {project_id} not found")
    keyspace = Project.get_keyspace(db)
    rows = await keyspace.query(
        f"SELECT COUNT(*) AS n FROM {keyspace} "
        f"WHERE STR_TO_MILLIS(created_at) < $created_at "
        f"OR (STR_TO_MILLIS(created_at) = $created_at AND META().id <= $project_id)",
        created_at=int(project.data.created_at.timestamp() * 1000),
        project_id=project_id,
    )
    return int(rows[0]["n"]) if rows else 1
