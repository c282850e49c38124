from __future__ import annotations

import os
import threading
from dataclasses import replace

from supabase import Client

from src.domain.entities.section import SectionEntity
from src.infrastructure.database.postgres_client import get_postgres_client

# module-level in-memory store for disabled mode
_MEM_SECTIONS: dict[str, SectionEntity] = {}
_MEM_LOCK = threading.Lock()


class SectionRepository:
    """Page sections. The image pointer is only moved through `compare_and_set_image`."""

    def __init__(self, client: Client | None) -> None:
        self.client = client
        self.disabled = os.getenv("SUPABASE_DISABLED", "0") == "1"
        self.use_local_db = os.getenv("USE_LOCAL_DB", "0") == "1"
        self.pg_client = get_postgres_client() if self.use_local_db else None

    def _row_to_entity(self, row: dict) -> SectionEntity:
        image_id = row.get("image_id")
        return SectionEntity(
            id=str(row["id"]),
            page_id=str(row["page_id"]),
            order=int(row["order"]),
            role=row.get("role"),
            image_id=str(image_id) if image_id is not None else None,
        )

    def create(
        self, page_id: str, order: int, role: str | None = None, image_id: str | None = None
    ) -> SectionEntity:
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            try:
                query = """
                    INSERT INTO page_sections (page_id, "order", role, image_id)
                    VALUES (%s, %s, %s, %s)
                    RETURNING *
                """
                row = self.pg_client.execute_insert(query, (page_id, order, role, image_id))
                return self._row_to_entity(row)
            except Exception as exc:
                raise RuntimeError(f"PostgreSQL insert section failed: {exc}") from exc

        # In-memory mode
        if self.disabled or self.client is None:
            with _MEM_LOCK:
                entity = SectionEntity(
                    id=str(len(_MEM_SECTIONS) + 1),
                    page_id=page_id,
                    order=order,
                    role=role,
                    image_id=image_id,
                )
                _MEM_SECTIONS[entity.id] = entity
            return entity

        # Supabase mode
        try:  # pragma: no cover - network
            data = {"page_id": page_id, "order": order, "role": role, "image_id": image_id}
            res = self.client.table("page_sections").insert(data).execute()
            return self._row_to_entity(res.data[0])
        except Exception as exc:
            raise RuntimeError(f"DB insert section failed: {exc}") from exc

    def get(self, section_id: str) -> SectionEntity | None:
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            query = "SELECT * FROM page_sections WHERE id = %s"
            row = self.pg_client.execute_one(query, (section_id,))
            return self._row_to_entity(row) if row else None

        # In-memory mode
        if self.disabled or self.client is None:
            return _MEM_SECTIONS.get(section_id)

        # Supabase mode
        try:  # pragma: no cover - network
            res = self.client.table("page_sections").select("*").eq("id", section_id).limit(1).execute()
            rows = res.data or []
            return self._row_to_entity(rows[0]) if rows else None
        except Exception as exc:
            raise RuntimeError(f"DB get section failed: {exc}") from exc

    def list_by_page(self, page_id: str) -> list[SectionEntity]:
        """Sections of a page, top to bottom."""
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            query = 'SELECT * FROM page_sections WHERE page_id = %s ORDER BY "order" ASC'
            rows = self.pg_client.execute_many(query, (page_id,))
            return [self._row_to_entity(row) for row in rows]

        # In-memory mode
        if self.disabled or self.client is None:
            return sorted(
                (s for s in _MEM_SECTIONS.values() if s.page_id == page_id),
                key=lambda s: s.order,
            )

        # Supabase mode
        try:  # pragma: no cover - network
            res = (
                self.client.table("page_sections")
                .select("*")
                .eq("page_id", page_id)
                .order("order")
                .execute()
            )
            return [self._row_to_entity(row) for row in res.data or []]
        except Exception as exc:
            raise RuntimeError(f"DB list sections failed: {exc}") from exc

    def compare_and_set_image(
        self, section_id: str, expected_image_id: str | None, new_image_id: str
    ) -> bool:
        """Point the section at `new_image_id` only if it still holds `expected_image_id`.

        Returns False when another writer moved the pointer first.
        """
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            query = """
                UPDATE page_sections SET image_id = %s
                WHERE id = %s AND image_id IS NOT DISTINCT FROM %s
            """
            affected = self.pg_client.execute_update(
                query, (new_image_id, section_id, expected_image_id)
            )
            return affected > 0

        # In-memory mode
        if self.disabled or self.client is None:
            with _MEM_LOCK:
                current = _MEM_SECTIONS.get(section_id)
                if current is None or current.image_id != expected_image_id:
                    return False
                _MEM_SECTIONS[section_id] = replace(current, image_id=new_image_id)
            return True

        # Supabase mode
        try:  # pragma: no cover - network
            q = self.client.table("page_sections").update({"image_id": new_image_id}).eq("id", section_id)
            if expected_image_id is None:
                q = q.is_("image_id", "null")
            else:
                q = q.eq("image_id", expected_image_id)
            res = q.execute()
            return bool(res.data)
        except Exception as exc:
            raise RuntimeError(f"DB update section failed: {exc}") from exc

    def shift_orders(self, page_id: str, from_order: int, by: int = 1) -> int:
        """Move every section at or below `from_order` down by `by` positions."""
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            query = """
                UPDATE page_sections SET "order" = "order" + %s
                WHERE page_id = %s AND "order" >= %s
            """
            return self.pg_client.execute_update(query, (by, page_id, from_order))

        # In-memory mode
        if self.disabled or self.client is None:
            moved = 0
            with _MEM_LOCK:
                for key, section in list(_MEM_SECTIONS.items()):
                    if section.page_id == page_id and section.order >= from_order:
                        _MEM_SECTIONS[key] = replace(section, order=section.order + by)
                        moved += 1
            return moved

        # Supabase mode: no server-side increment through the table API
        try:  # pragma: no cover - network
            for section in reversed(self.list_by_page(page_id)):
                if section.order >= from_order:
                    self.client.table("page_sections").update(
                        {"order": section.order + by}
                    ).eq("id", section.id).execute()
            return len([s for s in self.list_by_page(page_id) if s.order >= from_order + by])
        except Exception as exc:
            raise RuntimeError(f"DB reorder sections failed: {exc}") from exc
