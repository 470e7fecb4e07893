"""SQLite implementation of the object repository."""

from __future__ import annotations

import asyncio
import sqlite3
import threading
from pathlib import Path
from typing import Any

from ..exceptions import ObjectAlreadyExistsError, ObjectNotFoundError, StaleLockError
from ..locking import check_lock, compute_lock
from .models import ObjectSnapshot
from .repository import ObjectRepository


class SQLiteObjectRepository(ObjectRepository):
    """Persist object snapshots using SQLite.

    ``store`` is a conditional update on ``lock_counter`` inside an immediate
    transaction, so two writers holding the same lock cannot both succeed.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(
            self.db_path, check_same_thread=False, isolation_level=None
        )
        self._conn.row_factory = sqlite3.Row
        self._mutex = threading.Lock()
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS objects (
                external_identifier TEXT PRIMARY KEY,
                data TEXT NOT NULL,
                version INTEGER NOT NULL,
                lock_counter INTEGER NOT NULL DEFAULT 0
            )
            """
        )

    # ------------------------------------------------------------------
    # Helper methods
    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        with self._mutex:
            cur = self._conn.execute(query, params)
            return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        with self._mutex:
            cur = self._conn.execute(query, params)
            return cur.fetchall()

    def _insert(self, snapshot: ObjectSnapshot) -> str:
        with self._mutex:
            try:
                self._conn.execute(
                    "INSERT INTO objects (external_identifier, data, version, lock_counter) VALUES (?, ?, ?, 0)",
                    (
                        snapshot.external_identifier,
                        snapshot.model_dump_json(),
                        snapshot.current_version,
                    ),
                )
            except sqlite3.IntegrityError as exc:
                raise ObjectAlreadyExistsError(snapshot.external_identifier) from exc
        return compute_lock(snapshot.external_identifier, snapshot.current_version, 0)

    def _compare_and_swap(
        self, snapshot: ObjectSnapshot, expected_lock: str | None, skip_lock: bool
    ) -> str:
        external_identifier = snapshot.external_identifier
        with self._mutex:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                row = self._conn.execute(
                    "SELECT version, lock_counter FROM objects WHERE external_identifier = ?",
                    (external_identifier,),
                ).fetchone()
                if row is None:
                    raise ObjectNotFoundError(external_identifier)
                current = compute_lock(external_identifier, row["version"], row["lock_counter"])
                check_lock(current, expected_lock, skip_lock=skip_lock)
                cur = self._conn.execute(
                    """
                    UPDATE objects
                    SET data = ?, version = ?, lock_counter = lock_counter + 1
                    WHERE external_identifier = ? AND lock_counter = ?
                    """,
                    (
                        snapshot.model_dump_json(),
                        snapshot.current_version,
                        external_identifier,
                        row["lock_counter"],
                    ),
                )
                if cur.rowcount != 1:
                    raise StaleLockError(expected=current, actual=expected_lock)
                self._conn.execute("COMMIT")
            except BaseException:
                self._conn.execute("ROLLBACK")
                raise
        return compute_lock(
            external_identifier, snapshot.current_version, row["lock_counter"] + 1
        )

    # ------------------------------------------------------------------
    # Repository API
    async def create(self, snapshot: ObjectSnapshot) -> str:
        return await asyncio.to_thread(self._insert, snapshot)

    async def load(self, external_identifier: str) -> tuple[ObjectSnapshot, str]:
        row = await asyncio.to_thread(
            self._fetchone,
            "SELECT data, version, lock_counter FROM objects WHERE external_identifier = ?",
            external_identifier,
        )
        if not row:
            raise ObjectNotFoundError(external_identifier)
        snapshot = ObjectSnapshot.model_validate_json(row["data"])
        return snapshot, compute_lock(external_identifier, row["version"], row["lock_counter"])

    async def store(
        self, snapshot: ObjectSnapshot, expected_lock: str | None, skip_lock: bool = False
    ) -> str:
        return await asyncio.to_thread(
            self._compare_and_swap, snapshot, expected_lock, skip_lock
        )

    async def list_objects(self) -> list[ObjectSnapshot]:
        rows = await asyncio.to_thread(
            self._fetchall, "SELECT data FROM objects ORDER BY external_identifier"
        )
        return [ObjectSnapshot.model_validate_json(r["data"]) for r in rows]
