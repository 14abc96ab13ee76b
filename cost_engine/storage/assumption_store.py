"""
Persistent cool data assumption overrides, one row per hierarchy level key.
"""
from datetime import datetime
from typing import Optional

from cost_engine.domain.assumption_models import AssumptionOverride
from cost_engine.storage.db import get_connection, initialize_schema


GLOBAL_SCOPE_KEY = "global"


def job_scope_key(job_id: str) -> str:
    return f"job:{job_id}"


def resource_scope_key(job_id: str, resource_id: str) -> str:
    return f"resource:{job_id}:{resource_id}"


class SqliteAssumptionStore:
    """Stores explicit overrides; an absent row means "inherit"."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        initialize_schema(db_path)

    def _get(self, scope_key: str) -> Optional[AssumptionOverride]:
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                "SELECT cool_data_percent, cool_data_retrieval_percent "
                "FROM assumption_override WHERE scope_key = ?",
                (scope_key,),
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        return AssumptionOverride(cool_data_percent=row[0], cool_data_retrieval_percent=row[1])

    def _put(
        self,
        scope_key: str,
        level: str,
        override: AssumptionOverride,
        job_id: Optional[str] = None,
        resource_id: Optional[str] = None
    ) -> None:
        conn = get_connection(self.db_path)
        try:
            with conn:
                conn.execute(
                    "INSERT OR REPLACE INTO assumption_override "
                    "(scope_key, level, job_id, resource_id, cool_data_percent, "
                    "cool_data_retrieval_percent, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (
                        scope_key,
                        level,
                        job_id,
                        resource_id,
                        override.cool_data_percent,
                        override.cool_data_retrieval_percent,
                        datetime.utcnow().isoformat(),
                    ),
                )
        finally:
            conn.close()

    def _delete(self, scope_key: str) -> bool:
        conn = get_connection(self.db_path)
        try:
            with conn:
                cursor = conn.execute(
                    "DELETE FROM assumption_override WHERE scope_key = ?", (scope_key,)
                )
            return cursor.rowcount > 0
        finally:
            conn.close()

    def get_global(self) -> Optional[AssumptionOverride]:
        return self._get(GLOBAL_SCOPE_KEY)

    def set_global(self, override: AssumptionOverride) -> None:
        self._put(GLOBAL_SCOPE_KEY, "global", override)

    def get_job(self, job_id: str) -> Optional[AssumptionOverride]:
        return self._get(job_scope_key(job_id))

    def set_job(self, job_id: str, override: AssumptionOverride) -> None:
        self._put(job_scope_key(job_id), "job", override, job_id=job_id)

    def clear_job(self, job_id: str) -> bool:
        return self._delete(job_scope_key(job_id))

    def get_resource(self, job_id: str, resource_id: str) -> Optional[AssumptionOverride]:
        return self._get(resource_scope_key(job_id, resource_id))

    def set_resource(self, job_id: str, resource_id: str, override: AssumptionOverride) -> None:
        self._put(
            resource_scope_key(job_id, resource_id),
            "resource",
            override,
            job_id=job_id,
            resource_id=resource_id,
        )

    def clear_resource(self, job_id: str, resource_id: str) -> bool:
        return self._delete(resource_scope_key(job_id, resource_id))
