from __future__ import annotations

import json
from typing import Any, Optional

import aiosqlite

from .base import BaseService


class EnforcementAuditStore(BaseService):
    """Append-only log of every enforcement attempt."""

    async def _create_tables(self, db: aiosqlite.Connection) -> None:
        await db.execute(
            """
            CREATE TABLE IF NOT EXISTS enforcement_audit (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              correlation_id TEXT NOT NULL,
              trigger TEXT NOT NULL,
              room_id TEXT NOT NULL,
              user_id TEXT NOT NULL,
              action TEXT NOT NULL,
              entity TEXT,
              reason TEXT,
              status TEXT NOT NULL,
              created_at_iso TEXT NOT NULL,
              details_json TEXT NOT NULL
            )
            """
        )
        await db.execute("CREATE INDEX IF NOT EXISTS idx_enfaudit_user ON enforcement_audit(user_id, id)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_enfaudit_room ON enforcement_audit(room_id, id)")

    async def add(
        self,
        *,
        correlation_id: str,
        trigger: str,
        room_id: str,
        user_id: str,
        action: str,
        status: str,
        created_at_iso: str,
        entity: Optional[str] = None,
        reason: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> int:
        details_json = json.dumps(details or {}, separators=(",", ":"), ensure_ascii=False)
        async with aiosqlite.connect(self._path) as db:
            cur = await db.execute(
                """
                INSERT INTO enforcement_audit (
                  correlation_id, trigger, room_id, user_id, action, entity,
                  reason, status, created_at_iso, details_json
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    correlation_id,
                    trigger,
                    room_id,
                    user_id,
                    action,
                    entity,
                    reason,
                    status,
                    created_at_iso,
                    details_json,
                ),
            )
            await db.commit()
            row_id = int(cur.lastrowid)
        self._logger.debug("Audit %s: %s %s in %s (%s)", row_id, action, user_id, room_id, status)
        return row_id
