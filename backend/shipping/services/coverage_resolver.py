"""
Coverage area resolver.

Maps a destination to the most specific active coverage area:
postal code > subdistrict > district > province-only.
"""
import logging
import uuid
from collections import Counter
from typing import Any, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from shipping.core.exceptions import CoverageAreaNotFoundException, DuplicateResourceException
from shipping.models.coverage_area import CoverageArea

logger = logging.getLogger(__name__)

SCOPE_FIELDS = ("district", "subdistrict", "postal_code")


def _norm(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value.casefold() if value else None


def matches(area: CoverageArea, district: Optional[str], subdistrict: Optional[str], postal_code: Optional[str]) -> bool:
    """Every scope field the area sets must equal the destination's."""
    wanted = {"district": _norm(district), "subdistrict": _norm(subdistrict), "postal_code": _norm(postal_code)}
    for field in SCOPE_FIELDS:
        own = _norm(getattr(area, field))
        if own is not None and own != wanted[field]:
            return False
    return True


def pick_most_specific(
    areas: list[CoverageArea],
    district: Optional[str] = None,
    subdistrict: Optional[str] = None,
    postal_code: Optional[str] = None,
) -> Optional[CoverageArea]:
    candidates = [a for a in areas if matches(a, district, subdistrict, postal_code)]
    if not candidates:
        return None
    return min(candidates, key=lambda a: (-a.specificity, a.priority_order))


class CoverageResolver:
    """Coverage lookups and area administration."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _areas_for_province(self, province: str, active_only: bool = True) -> list[CoverageArea]:
        query = select(CoverageArea).where(func.lower(CoverageArea.province) == province.strip().lower())
        if active_only:
            query = query.where(CoverageArea.is_active.is_(True))
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def resolve(
        self,
        province: Optional[str],
        district: Optional[str] = None,
        subdistrict: Optional[str] = None,
        postal_code: Optional[str] = None,
    ) -> Optional[CoverageArea]:
        """Most specific active area, or None when the destination is not covered."""
        if not province or not province.strip():
            return None
        areas = await self._areas_for_province(province)
        area = pick_most_specific(areas, district, subdistrict, postal_code)
        if area is None:
            logger.debug(f"No coverage for {province}/{district}/{subdistrict}/{postal_code}")
        return area

    async def get_coverage_info(self, province: str) -> dict[str, Any]:
        area = await self.resolve(province)
        if area is None:
            return {
                "province": province,
                "is_self_delivery": False,
                "delivery_route": None,
                "delivery_zone": None,
                "base_fee": None,
                "free_delivery_threshold": None,
                "service_levels": [],
            }
        return {
            "province": area.province,
            "is_self_delivery": area.has_self_delivery_route,
            "delivery_route": area.delivery_route,
            "delivery_zone": area.delivery_zone,
            "base_fee": area.base_delivery_fee,
            "free_delivery_threshold": area.free_delivery_threshold,
            "service_levels": area.supported_service_levels(),
        }

    async def list_self_delivery_areas(self) -> list[CoverageArea]:
        result = await self.db.execute(
            select(CoverageArea)
            .where(CoverageArea.is_active.is_(True), CoverageArea.is_self_delivery_area.is_(True))
            .order_by(CoverageArea.priority_order, CoverageArea.province)
        )
        return list(result.scalars().all())

    async def get_area(self, area_id: uuid.UUID) -> CoverageArea:
        area = await self.db.get(CoverageArea, area_id)
        if not area:
            raise CoverageAreaNotFoundException(area_id)
        return area

    async def find_exact(self, data: dict[str, Any]) -> Optional[CoverageArea]:
        """Area with exactly the same scope, active or not."""
        for area in await self._areas_for_province(data["province"], active_only=False):
            if all(_norm(getattr(area, f)) == _norm(data.get(f)) for f in SCOPE_FIELDS):
                return area
        return None

    async def create_area(self, data: dict[str, Any], commit: bool = True) -> CoverageArea:
        if await self.find_exact(data):
            scope = "/".join(str(data.get(f)) for f in ("province", *SCOPE_FIELDS) if data.get(f))
            raise DuplicateResourceException("CoverageArea", "scope", scope)
        area = CoverageArea(**data)
        area.validate()
        self.db.add(area)
        if commit:
            await self.db.commit()
            logger.info(f"Created coverage area {area!r}")
        return area

    async def update_area(self, area_id: uuid.UUID, changes: dict[str, Any]) -> CoverageArea:
        area = await self.get_area(area_id)
        for field, value in changes.items():
            setattr(area, field, value)
        try:
            area.validate()
        except Exception:
            await self.db.rollback()
            raise
        await self.db.commit()
        return area

    async def deactivate_area(self, area_id: uuid.UUID) -> CoverageArea:
        area = await self.get_area(area_id)
        area.is_active = False
        await self.db.commit()
        logger.info(f"Deactivated coverage area {area!r}")
        return area

    async def get_coverage_stats(self) -> dict[str, Any]:
        """Area counts by state and kind, plus areas per province and per route."""
        result = await self.db.execute(select(CoverageArea))
        areas = result.scalars().all()
        active = [a for a in areas if a.is_active]
        self_delivery = [a for a in areas if a.is_self_delivery_area]
        return {
            "total_areas": len(areas),
            "active_areas": len(active),
            "inactive_areas": len(areas) - len(active),
            "self_delivery_areas": len(self_delivery),
            "third_party_areas": len(areas) - len(self_delivery),
            "provinces_covered": dict(Counter(a.province for a in areas)),
            "routes_covered": dict(Counter(a.delivery_route for a in self_delivery if a.delivery_route)),
        }
