"""
SyncStateRepository: key/value store for order sync bookkeeping.
"""

from datetime import UTC, datetime
from typing import Dict, Optional

from sqlalchemy import text

from agentos.db.repositories.base import BaseRepository, log_operation, to_iso


class SyncStateRepository(BaseRepository):
    @log_operation()
    async def get_all(self) -> Dict[str, Optional[str]]:
        async with self.session() as session:
            result = await session.execute(text("SELECT key, value FROM sync_state"))
            return {row.key: row.value for row in result}

    @log_operation()
    async def set_many(self, values: Dict[str, Optional[str]]) -> None:
        now = to_iso(datetime.now(UTC))
        async with self.session() as session:
            for key, value in values.items():
                await session.execute(
                    text(
                        """
                        INSERT INTO sync_state (key, value, updated_at)
                        VALUES (:key, :value, :updated_at)
                        ON CONFLICT (key) DO UPDATE SET
                            value = excluded.value,
                            updated_at = excluded.updated_at
                        """
                    ),
                    {"key": key, "value": value, "updated_at": now},
                )
