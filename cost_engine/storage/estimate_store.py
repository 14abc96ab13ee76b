"""
Estimate store: the latest CostEstimate per (job, resource).
"""
import json
from typing import List, Optional

from cost_engine.domain.cost_models import CostEstimate
from cost_engine.storage.db import get_connection, initialize_schema


class SqliteEstimateStore:
    """Each write supersedes the previous estimate for the same resource."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        initialize_schema(db_path)

    def replace(self, estimate: CostEstimate) -> None:
        """
        Persist an estimate, overwriting any prior one for its resource.

        Raises:
            ValueError: If the estimate is not tied to a job and resource
        """
        if not estimate.job_id or not estimate.resource_id:
            raise ValueError("Only estimates with a job_id and resource_id can be stored")
        payload = json.dumps(estimate.to_dict(), sort_keys=True)
        conn = get_connection(self.db_path)
        try:
            with conn:
                conn.execute(
                    "INSERT OR REPLACE INTO cost_estimate "
                    "(job_id, resource_id, payload, estimated_at) VALUES (?, ?, ?, ?)",
                    (
                        estimate.job_id,
                        estimate.resource_id,
                        payload,
                        estimate.estimated_at.isoformat(),
                    ),
                )
        finally:
            conn.close()

    def get(self, job_id: str, resource_id: str) -> Optional[CostEstimate]:
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                "SELECT payload FROM cost_estimate WHERE job_id = ? AND resource_id = ?",
                (job_id, resource_id),
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        return CostEstimate.from_dict(json.loads(row[0]))

    def list_for_job(self, job_id: str) -> List[CostEstimate]:
        conn = get_connection(self.db_path)
        try:
            rows = conn.execute(
                "SELECT payload FROM cost_estimate WHERE job_id = ? ORDER BY resource_id",
                (job_id,),
            ).fetchall()
        finally:
            conn.close()
        return [CostEstimate.from_dict(json.loads(row[0])) for row in rows]
