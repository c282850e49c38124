from __future__ import annotations

import itertools
import os
import threading
from datetime import UTC, datetime

from supabase import Client

from src.domain.entities.section_history import SectionHistoryEntity
from src.infrastructure.database.postgres_client import get_postgres_client

# module-level in-memory store for disabled mode
_MEM_HISTORY: dict[str, SectionHistoryEntity] = {}
_MEM_LOCK = threading.Lock()
_MEM_IDS = itertools.count(1)


class HistoryRepository:
    """Append-only ledger of section image substitutions.

    Entries are never updated. The only deletion is `discard`, which the ledger
    uses to back out an entry whose repoint lost a race.
    """

    def __init__(self, client: Client | None) -> None:
        self.client = client
        self.disabled = os.getenv("SUPABASE_DISABLED", "0") == "1"
        self.use_local_db = os.getenv("USE_LOCAL_DB", "0") == "1"
        self.pg_client = get_postgres_client() if self.use_local_db else None

    def _row_to_entity(self, row: dict) -> SectionHistoryEntity:
        """Convert database row to SectionHistoryEntity."""
        created_at = row["created_at"]
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)
        previous = row.get("previous_image_id")
        return SectionHistoryEntity(
            id=str(row["id"]),
            section_id=str(row["section_id"]),
            user_id=row.get("user_id"),
            previous_image_id=str(previous) if previous is not None else None,
            new_image_id=str(row["new_image_id"]),
            action_type=row["action_type"],
            created_at=created_at,
            prompt=row.get("prompt"),
        )

    def create(
        self,
        section_id: str,
        user_id: str | None,
        previous_image_id: str | None,
        new_image_id: str,
        action_type: str,
        prompt: str | None = None,
    ) -> SectionHistoryEntity:
        now = datetime.now(UTC)

        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            try:
                query = """
                    INSERT INTO section_image_history (
                        section_id, user_id, previous_image_id, new_image_id,
                        action_type, prompt, created_at
                    ) VALUES (%s, %s, %s, %s, %s, %s, %s)
                    RETURNING *
                """
                row = self.pg_client.execute_insert(
                    query,
                    (section_id, user_id, previous_image_id, new_image_id, action_type, prompt, now),
                )
                return self._row_to_entity(row)
            except Exception as exc:
                raise RuntimeError(f"PostgreSQL insert history failed: {exc}") from exc

        # In-memory mode
        if self.disabled or self.client is None:
            with _MEM_LOCK:
                entity = SectionHistoryEntity(
                    id=f"hist_{next(_MEM_IDS)}",
                    section_id=section_id,
                    user_id=user_id,
                    previous_image_id=previous_image_id,
                    new_image_id=new_image_id,
                    action_type=action_type,
                    created_at=now,
                    prompt=prompt,
                )
                _MEM_HISTORY[entity.id] = entity
            return entity

        # Supabase mode
        try:  # pragma: no cover - network
            data = {
                "section_id": section_id,
                "user_id": user_id,
                "previous_image_id": previous_image_id,
                "new_image_id": new_image_id,
                "action_type": action_type,
                "prompt": prompt,
                "created_at": now.isoformat(),
            }
            res = self.client.table("section_image_history").insert(data).execute()
            return self._row_to_entity(res.data[0])
        except Exception as exc:
            raise RuntimeError(f"DB insert history failed: {exc}") from exc

    def discard(self, entry_id: str) -> None:
        """Remove an entry whose pointer move never happened."""
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            query = "DELETE FROM section_image_history WHERE id = %s"
            self.pg_client.execute_update(query, (entry_id,))
            return

        # In-memory mode
        if self.disabled or self.client is None:
            with _MEM_LOCK:
                _MEM_HISTORY.pop(entry_id, None)
            return

        # Supabase mode
        try:  # pragma: no cover - network
            self.client.table("section_image_history").delete().eq("id", entry_id).execute()
        except Exception as exc:
            raise RuntimeError(f"DB delete history failed: {exc}") from exc

    def list_for_section(
        self, section_id: str, current_image_id: str | None, limit: int = 10
    ) -> list[SectionHistoryEntity]:
        """Most recent entries logged against the section or touching its current image.

        Entries logged under a different (e.g. not yet persisted) section reference
        are still found through the image they point to.
        """
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            query = """
                SELECT * FROM section_image_history
                WHERE section_id = %s
                   OR (%s IS NOT NULL AND (previous_image_id = %s OR new_image_id = %s))
                ORDER BY created_at DESC, id DESC
                LIMIT %s
            """
            rows = self.pg_client.execute_many(
                query, (section_id, current_image_id, current_image_id, current_image_id, limit)
            )
            return [self._row_to_entity(row) for row in rows]

        # In-memory mode
        if self.disabled or self.client is None:
            matches = [
                h
                for h in _MEM_HISTORY.values()
                if h.section_id == section_id
                or (
                    current_image_id is not None
                    and current_image_id in (h.previous_image_id, h.new_image_id)
                )
            ]
            # insertion order breaks created_at ties
            order = {key: i for i, key in enumerate(_MEM_HISTORY)}
            matches.sort(key=lambda h: (h.created_at, order[h.id]), reverse=True)
            return matches[:limit]

        # Supabase mode
        try:  # pragma: no cover - network
            table = self.client.table("section_image_history")
            by_section = (
                table.select("*")
                .eq("section_id", section_id)
                .order("created_at", desc=True)
                .limit(limit)
                .execute()
            ).data or []
            by_image: list[dict] = []
            if current_image_id is not None:
                by_image = (
                    table.select("*")
                    .or_(f"previous_image_id.eq.{current_image_id},new_image_id.eq.{current_image_id}")
                    .order("created_at", desc=True)
                    .limit(limit)
                    .execute()
                ).data or []
            merged = {str(row["id"]): self._row_to_entity(row) for row in by_section + by_image}
            ordered = sorted(merged.values(), key=lambda h: h.created_at, reverse=True)
            return ordered[:limit]
        except Exception as exc:
            raise RuntimeError(f"DB list history failed: {exc}") from exc
