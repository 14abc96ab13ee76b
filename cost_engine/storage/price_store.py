"""
Durable price store.

A partitioned key-value table keyed by (region, meter_key). Each write installs
a whole row in a single statement, so readers never see a partial entry and
concurrent writers resolve as last-write-wins.
"""
import logging
from datetime import datetime
from typing import Optional

from cost_engine.domain.price_models import PriceCacheEntry
from cost_engine.storage.db import get_connection, initialize_schema


logger = logging.getLogger(__name__)

_COLUMNS = (
    "region, meter_key, unit_price, unit_of_measure, currency, "
    "meter_name, fetched_at, expires_at"
)


def _row_values(entry: PriceCacheEntry) -> tuple:
    return (
        entry.region,
        entry.meter_key,
        entry.unit_price,
        entry.unit_of_measure,
        entry.currency,
        entry.meter_name,
        entry.fetched_at.isoformat(),
        entry.expires_at.isoformat(),
    )


class SqlitePriceStore:
    """Durable tier of the price cache."""

    def __init__(self, db_path: str):
        self.db_path = db_path
        initialize_schema(db_path)

    def get(self, region: str, meter_key: str) -> Optional[PriceCacheEntry]:
        """
        Read an entry regardless of expiry.

        Returns:
            The stored entry, or None if the key was never written
        """
        conn = get_connection(self.db_path)
        try:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM price_cache WHERE region = ? AND meter_key = ?",
                (region, meter_key),
            ).fetchone()
        finally:
            conn.close()
        if row is None:
            return None
        return PriceCacheEntry(
            region=row[0],
            meter_key=row[1],
            unit_price=row[2],
            unit_of_measure=row[3],
            currency=row[4],
            meter_name=row[5],
            fetched_at=datetime.fromisoformat(row[6]),
            expires_at=datetime.fromisoformat(row[7]),
        )

    def put_if_absent(self, entry: PriceCacheEntry) -> bool:
        """
        Insert an entry only if the key does not exist yet.

        Returns:
            True if the entry was written
        """
        conn = get_connection(self.db_path)
        try:
            with conn:
                cursor = conn.execute(
                    f"INSERT OR IGNORE INTO price_cache ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                    _row_values(entry),
                )
            return cursor.rowcount == 1
        finally:
            conn.close()

    def replace(self, entry: PriceCacheEntry) -> None:
        """Install an entry, overwriting any existing one (last write wins)."""
        conn = get_connection(self.db_path)
        try:
            with conn:
                conn.execute(
                    f"INSERT OR REPLACE INTO price_cache ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                    _row_values(entry),
                )
        finally:
            conn.close()

    def delete(self, region: str, meter_key: str) -> None:
        conn = get_connection(self.db_path)
        try:
            with conn:
                conn.execute(
                    "DELETE FROM price_cache WHERE region = ? AND meter_key = ?",
                    (region, meter_key),
                )
        finally:
            conn.close()

    def purge_expired(self, now: Optional[datetime] = None) -> int:
        """
        Delete entries past their expiry.

        Reads already treat expired rows as misses; this only reclaims space.

        Returns:
            Number of rows deleted
        """
        cutoff = (now or datetime.utcnow()).isoformat()
        conn = get_connection(self.db_path)
        try:
            with conn:
                cursor = conn.execute("DELETE FROM price_cache WHERE expires_at <= ?", (cutoff,))
            deleted = cursor.rowcount
        finally:
            conn.close()
        if deleted:
            logger.info(f"Purged {deleted} expired price cache entries")
        return deleted
