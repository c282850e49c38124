from __future__ import annotations

import os
from datetime import UTC, datetime

from supabase import Client

from src.domain.entities.image import ImageEntity
from src.infrastructure.database.postgres_client import get_postgres_client

# module-level in-memory store for disabled mode
_MEM_IMAGES: dict[str, ImageEntity] = {}


class ImageRepository:
    """Image rows. Images are immutable: there is no update path."""

    def __init__(self, client: Client | None) -> None:
        self.client = client
        self.disabled = os.getenv("SUPABASE_DISABLED", "0") == "1"
        self.use_local_db = os.getenv("USE_LOCAL_DB", "0") == "1"
        self.pg_client = get_postgres_client() if self.use_local_db else None

    def _row_to_entity(self, row: dict) -> ImageEntity:
        """Convert database row to ImageEntity."""
        # PostgreSQL returns datetime objects, Supabase returns ISO strings
        created_at = row["created_at"]
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)

        return ImageEntity(
            id=str(row["id"]),
            user_id=row.get("user_id"),
            path=row.get("storage_path", row.get("path", "")),
            width=row["width"],
            height=row["height"],
            mime_type=row["mime_type"],
            source_type=row.get("source_type") or "upload",
            created_at=created_at,
            file_size=row.get("file_size"),
            import_batch_id=row.get("import_batch_id"),
            segment_index=row.get("segment_index"),
        )

    def create(
        self,
        user_id: str | None,
        path: str,
        width: int,
        height: int,
        mime_type: str,
        source_type: str,
        file_size: int | None = None,
        import_batch_id: str | None = None,
        segment_index: int | None = None,
    ) -> ImageEntity:
        now = datetime.now(UTC)

        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            try:
                query = """
                    INSERT INTO images (
                        user_id, storage_path, width, height, mime_type, source_type,
                        file_size, import_batch_id, segment_index, created_at
                    ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                    RETURNING *
                """
                row = self.pg_client.execute_insert(
                    query,
                    (
                        user_id, path, width, height, mime_type, source_type,
                        file_size, import_batch_id, segment_index, now,
                    ),
                )
                return self._row_to_entity(row)
            except Exception as exc:
                raise RuntimeError(f"PostgreSQL insert image failed: {exc}") from exc

        # In-memory mode
        if self.disabled or self.client is None:
            image_id = f"img_{len(_MEM_IMAGES)+1}"
            entity = ImageEntity(
                id=image_id,
                user_id=user_id,
                path=path,
                width=width,
                height=height,
                mime_type=mime_type,
                source_type=source_type,
                created_at=now,
                file_size=file_size,
                import_batch_id=import_batch_id,
                segment_index=segment_index,
            )
            _MEM_IMAGES[entity.id] = entity
            return entity

        # Supabase mode
        try:  # pragma: no cover - network
            data = {
                "user_id": user_id,
                "storage_path": path,
                "width": width,
                "height": height,
                "mime_type": mime_type,
                "source_type": source_type,
                "file_size": file_size,
                "import_batch_id": import_batch_id,
                "segment_index": segment_index,
                "created_at": now.isoformat(),
            }
            res = self.client.table("images").insert(data).execute()
            return self._row_to_entity(res.data[0])
        except Exception as exc:
            raise RuntimeError(f"DB insert image failed: {exc}") from exc

    def get(self, image_id: str) -> ImageEntity | None:
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            query = "SELECT * FROM images WHERE id = %s"
            row = self.pg_client.execute_one(query, (image_id,))
            return self._row_to_entity(row) if row else None

        # In-memory mode
        if self.disabled or self.client is None:
            return _MEM_IMAGES.get(image_id)

        # Supabase mode
        try:  # pragma: no cover - network
            res = self.client.table("images").select("*").eq("id", image_id).limit(1).execute()
            rows = res.data or []
            return self._row_to_entity(rows[0]) if rows else None
        except Exception as exc:
            raise RuntimeError(f"DB get image failed: {exc}") from exc

    def get_many(self, image_ids: list[str]) -> dict[str, ImageEntity]:
        """Look up several images at once; missing ids are simply absent."""
        ids = sorted({i for i in image_ids if i})
        if not ids:
            return {}

        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            query = "SELECT * FROM images WHERE id = ANY(%s)"
            rows = self.pg_client.execute_many(query, (ids,))
            return {str(r["id"]): self._row_to_entity(r) for r in rows}

        # In-memory mode
        if self.disabled or self.client is None:
            return {i: _MEM_IMAGES[i] for i in ids if i in _MEM_IMAGES}

        # Supabase mode
        try:  # pragma: no cover - network
            res = self.client.table("images").select("*").in_("id", ids).execute()
            return {str(r["id"]): self._row_to_entity(r) for r in res.data or []}
        except Exception as exc:
            raise RuntimeError(f"DB list images failed: {exc}") from exc

    def list_by_batch_segment(self, import_batch_id: str, segment_index: int) -> list[ImageEntity]:
        """Images produced by one bulk import for one positional segment."""
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            query = """
                SELECT * FROM images
                WHERE import_batch_id = %s AND segment_index = %s
                ORDER BY created_at ASC
            """
            rows = self.pg_client.execute_many(query, (import_batch_id, segment_index))
            return [self._row_to_entity(row) for row in rows]

        # In-memory mode
        if self.disabled or self.client is None:
            matches = [
                img
                for img in _MEM_IMAGES.values()
                if img.import_batch_id == import_batch_id and img.segment_index == segment_index
            ]
            return sorted(matches, key=lambda x: x.created_at)

        # Supabase mode
        try:  # pragma: no cover - network
            res = (
                self.client.table("images")
                .select("*")
                .eq("import_batch_id", import_batch_id)
                .eq("segment_index", segment_index)
                .order("created_at")
                .execute()
            )
            return [self._row_to_entity(row) for row in res.data or []]
        except Exception as exc:
            raise RuntimeError(f"DB list images by batch failed: {exc}") from exc

    def search_by_path(self, fragment: str, limit: int = 20) -> list[ImageEntity]:
        """Images whose storage path contains `fragment`."""
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            query = """
                SELECT * FROM images
                WHERE storage_path LIKE %s
                ORDER BY created_at ASC
                LIMIT %s
            """
            rows = self.pg_client.execute_many(query, (f"%{fragment}%", limit))
            return [self._row_to_entity(row) for row in rows]

        # In-memory mode
        if self.disabled or self.client is None:
            matches = [img for img in _MEM_IMAGES.values() if fragment in img.path]
            return sorted(matches, key=lambda x: x.created_at)[:limit]

        # Supabase mode
        try:  # pragma: no cover - network
            res = (
                self.client.table("images")
                .select("*")
                .like("storage_path", f"%{fragment}%")
                .order("created_at")
                .limit(limit)
                .execute()
            )
            return [self._row_to_entity(row) for row in res.data or []]
        except Exception as exc:
            raise RuntimeError(f"DB search images failed: {exc}") from exc
