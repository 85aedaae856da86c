"""Brand storage: Postgres or a file-based fallback."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Protocol

from cadence.brands.models import Brand, BrandVideoConfig
from cadence.config import get_settings
from cadence.db import as_json, connect

logger = logging.getLogger(__name__)


class BrandNotFoundError(LookupError):
    def __init__(self, brand_id: str):
        self.brand_id = brand_id
        super().__init__(f"Brand not found: {brand_id}")


class BrandStore(Protocol):
    def get(self, brand_id: str) -> Brand | None: ...
    def save(self, brand: Brand) -> Brand: ...


def update_video_config(store: BrandStore, brand_id: str, changes: dict) -> BrandVideoConfig:
    """Merge ``changes`` into the brand's current (or default) video config and persist it."""
    brand = store.get(brand_id)
    if brand is None:
        raise BrandNotFoundError(brand_id)
    merged = brand.effective_video_config.model_dump()
    merged.update({k: v for k, v in changes.items() if k in BrandVideoConfig.model_fields})
    config = BrandVideoConfig.model_validate(merged)
    store.save(brand.model_copy(update={"video_config": config}))
    logger.info("Updated video config for brand %s", brand_id)
    return config


class PostgresBrandStore:
    def __init__(self, database_url: str):
        self._conn = connect(
            database_url,
            """
            CREATE TABLE IF NOT EXISTS brands (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL DEFAULT '',
                video_config JSONB,
                created_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
            )
            """,
        )

    def get(self, brand_id: str) -> Brand | None:
        row = self._conn.execute(
            "SELECT id, name, video_config FROM brands WHERE id = %s",
            (brand_id,),
        ).fetchone()
        if not row:
            return None
        return Brand(id=row[0], name=row[1], video_config=as_json(row[2]))

    def save(self, brand: Brand) -> Brand:
        config = brand.video_config.model_dump_json() if brand.video_config else None
        self._conn.execute(
            """
            INSERT INTO brands (id, name, video_config) VALUES (%s, %s, %s::jsonb)
            ON CONFLICT (id) DO UPDATE SET name = EXCLUDED.name, video_config = EXCLUDED.video_config
            """,
            (brand.id, brand.name, config),
        )
        return brand


class FileBrandStore:
    """All brands in a single JSON document keyed by id."""

    def __init__(self, data_dir: Path):
        self._path = Path(data_dir) / "brands.json"

    def _load(self) -> dict[str, dict]:
        if not self._path.exists():
            return {}
        with open(self._path, "r", encoding="utf-8") as f:
            return json.load(f)

    def get(self, brand_id: str) -> Brand | None:
        data = self._load().get(brand_id)
        return Brand.model_validate(data) if data else None

    def save(self, brand: Brand) -> Brand:
        brands = self._load()
        brands[brand.id] = brand.model_dump(mode="json")
        tmp = self._path.with_suffix(".json.tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(brands, f, indent=2)
        os.replace(tmp, self._path)
        return brand


_store: BrandStore | None = None


def get_brand_store() -> BrandStore:
    """Return singleton brand store (Postgres if configured, else file-based)."""
    global _store
    if _store is None:
        settings = get_settings()
        _store = build_brand_store(settings.cadence_database_url, settings.data_dir)
    return _store


def build_brand_store(database_url: str | None, data_dir: Path) -> BrandStore:
    if database_url:
        try:
            return PostgresBrandStore(database_url)
        except Exception as e:
            logger.warning("Postgres brand store failed (%s), falling back to file store", e)
    return FileBrandStore(data_dir)
