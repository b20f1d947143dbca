"""
Advertisement selection for a (placement, category, location) triple.

Eligibility: placement matches, active, inside [starts_at, ends_at], scoped
to the requested location or one of its ancestors (or global), and either
category-agnostic or for the requested category.

Ranking: scope specificity (city > region > country > global), then
category match, then most recently created.
"""

from datetime import datetime, timezone
import logging
from typing import Iterable, List, Mapping, Optional, Union

from ...core.config import Settings
from ...core.enums import AdPlacement, LocationType
from ...core.exceptions import DirectoryApiError
from ...integrations.directory_client import DirectoryClient
from ...schemas.advertisement import Advertisement
from ...schemas.location import LocationDescriptor
from ..base import BaseService
from ..location.hierarchy_store import LocationHierarchyStore
from .location_chain import LocationChain, build_location_chain

logger = logging.getLogger(__name__)

PlacementArg = Union[AdPlacement, str]

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _placement_value(placement: PlacementArg) -> str:
    if isinstance(placement, AdPlacement):
        return placement.value
    return str(placement).strip().upper()


def _aware(value: datetime) -> datetime:
    # Naive timestamps from the API are UTC.
    return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)


def is_eligible(
    ad: Advertisement,
    placement: PlacementArg,
    category_id: Optional[str],
    chain: Mapping[LocationType, str],
    now: datetime,
) -> bool:
    if ad.ad_type.upper() != _placement_value(placement) or not ad.is_active:
        return False
    now = _aware(now)
    if ad.starts_at is not None and now < _aware(ad.starts_at):
        return False
    if ad.ends_at is not None and now > _aware(ad.ends_at):
        return False
    if ad.category_id and ad.category_id != category_id:
        return False
    scope = ad.scope_type
    if scope is LocationType.GLOBAL:
        return True
    return chain.get(scope) == ad.scope_id


def rank_advertisements(
    ads: Iterable[Advertisement],
    placement: PlacementArg,
    category_id: Optional[str],
    location: LocationDescriptor,
    chain: Optional[Mapping[LocationType, str]] = None,
    now: Optional[datetime] = None,
) -> List[Advertisement]:
    """Eligible ads, best first. Pure: no I/O, no clock unless `now` is omitted."""
    if chain is None:
        chain = {} if location.is_global or not location.id else {location.type: location.id}
    now = now or datetime.now(timezone.utc)
    eligible = [ad for ad in ads if is_eligible(ad, placement, category_id, chain, now)]

    def _key(ad: Advertisement) -> tuple:
        category_match = bool(category_id) and ad.category_id == category_id
        created = _aware(ad.created_at) if ad.created_at else _EPOCH
        return (ad.scope_type.specificity, category_match, created)

    return sorted(eligible, key=_key, reverse=True)


class AdvertisementService(BaseService):
    """Picks the single advertisement to show in a placement."""

    def __init__(
        self,
        client: DirectoryClient,
        store: Optional[LocationHierarchyStore] = None,
        config: Optional[Settings] = None,
    ) -> None:
        super().__init__(config)
        self.client = client
        self.store = store

    @BaseService.measure_operation("select_ad")
    async def select_ad(
        self,
        placement: PlacementArg,
        category_id: Optional[str] = None,
        location: Optional[LocationDescriptor] = None,
        *,
        now: Optional[datetime] = None,
    ) -> Optional[Advertisement]:
        """Best eligible ad for the placement, or None (also on network failure)."""
        location = location or LocationDescriptor.global_()
        try:
            ads = await self.client.list_advertisements(_placement_value(placement))
        except DirectoryApiError as exc:
            self.logger.warning("Advertisement fetch failed for %s: %s", placement, exc.message)
            return None

        chain = await self._chain(location)
        ranked = rank_advertisements(ads, placement, category_id, location, chain, now)
        if not ranked:
            self.logger.debug(
                "No eligible %s ad for category=%s location=%s", placement, category_id, location.name
            )
            return None
        return ranked[0]

    @BaseService.measure_operation("get_display_advertisement")
    async def get_display_advertisement(
        self,
        placement: PlacementArg,
        category_id: Optional[str] = None,
        location: Optional[LocationDescriptor] = None,
        *,
        now: Optional[datetime] = None,
    ) -> Optional[Advertisement]:
        """
        Ask the server's display endpoint, then re-check the answer against
        the local eligibility rules.
        """
        location = location or LocationDescriptor.global_()
        try:
            ad = await self.client.get_display_advertisement(
                ad_type=_placement_value(placement),
                category_id=category_id,
                location_id=location.id,
                location_type=location.type,
            )
        except DirectoryApiError as exc:
            self.logger.warning("Display advertisement fetch failed: %s", exc)
            return None
        if ad is None:
            return None

        chain = await self._chain(location)
        if not rank_advertisements([ad], placement, category_id, location, chain, now):
            self.logger.warning("Display endpoint returned ineligible ad %s; ignoring it", ad.id)
            return None
        return ad

    async def _chain(self, location: LocationDescriptor) -> LocationChain:
        return await build_location_chain(location, self.store)
