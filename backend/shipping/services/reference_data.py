"""
Reference data seeding (coverage areas, providers) from JSON files.

Seeding is additive: existing areas (same scope) and providers (same
code) are left untouched so admin edits survive restarts.
"""
import json
import logging
from pathlib import Path
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shipping.core.exceptions import ConfigurationException
from shipping.models.coverage_area import CoverageArea
from shipping.models.provider import DeliveryProvider
from shipping.schemas.coverage import CoverageAreaCreate
from shipping.schemas.provider import ProviderCreate
from shipping.services.coverage_resolver import CoverageResolver

logger = logging.getLogger(__name__)


def _read_json(path: str) -> Any:
    try:
        return json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigurationException(
            message=f"Cannot load reference data from {path}: {e}",
            details={"path": path},
        ) from e


def load_coverage_seed(path: str) -> list[dict[str, Any]]:
    """Area entries with file-level defaults applied, validated."""
    raw = _read_json(path)
    defaults = raw.get("defaults", {})
    return [
        CoverageAreaCreate.model_validate({**defaults, **entry}).model_dump()
        for entry in raw.get("areas", [])
    ]


def load_provider_seed(path: str) -> list[dict[str, Any]]:
    return [ProviderCreate.model_validate(entry).model_dump() for entry in _read_json(path)]


async def seed_coverage_areas(db: AsyncSession, path: str) -> int:
    resolver = CoverageResolver(db)
    created = 0
    for entry in load_coverage_seed(path):
        if await resolver.find_exact(entry):
            continue
        area = CoverageArea(**entry)
        area.validate()
        db.add(area)
        await db.flush()
        created += 1
    await db.commit()
    logger.info(f"Coverage seed: {created} areas created from {path}")
    return created


async def seed_providers(db: AsyncSession, path: str) -> int:
    created = 0
    for entry in load_provider_seed(path):
        existing = await db.execute(
            select(DeliveryProvider.id).where(DeliveryProvider.code == entry["code"])
        )
        if existing.scalar_one_or_none():
            continue
        provider = DeliveryProvider(**entry)
        provider.validate()
        db.add(provider)
        created += 1
    await db.commit()
    logger.info(f"Provider seed: {created} providers created from {path}")
    return created
