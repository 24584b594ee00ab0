"""Cached readers for reference data shared by the API handlers.

Values are converted to pydantic records inside the worker thread so nothing
in the cache is bound to a database session.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from . import crud, schemas
from .cache import CACHE_KEYS, MISSING, DataCache, fetch_with_timeout_and_retry
from .config import Settings, get_settings

CITIES_TTL = 60.0
AREAS_TTL = 30.0
STREETS_TTL = 30.0
USER_ROLE_TTL = 300.0
BILLING_TTL = 60.0
INVOICES_TTL = 30.0


def _read_cities(db: Session) -> List[schemas.City]:
    return [schemas.City.model_validate(city) for city in crud.get_cities(db)]


def _read_areas(db: Session, city_id: int) -> List[schemas.Area]:
    return [schemas.Area.model_validate(area) for area in crud.get_areas_for_city(db, city_id)]


def _read_streets(db: Session, city_id: int) -> List[schemas.StreetRecord]:
    return [schemas.StreetRecord.model_validate(street) for street in crud.get_streets_for_city(db, city_id)]


def _read_user_role(db: Session, user_id: int) -> Optional[schemas.UserRoleInfo]:
    user = crud.get_user(db, user_id)
    return schemas.UserRoleInfo.model_validate(user) if user else None


def _read_customers(db: Session, active_only: bool) -> List[schemas.Customer]:
    return [schemas.Customer.model_validate(item) for item in crud.get_customers(db, active_only)]


def _read_pricing(db: Session) -> List[schemas.Pricing]:
    return [schemas.Pricing.model_validate(item) for item in crud.get_pricing(db)]


def _read_templates(db: Session) -> List[schemas.InvoiceTemplate]:
    return [schemas.InvoiceTemplate.model_validate(item) for item in crud.get_templates(db)]


def _read_invoices(db: Session) -> List[schemas.InvoiceSummary]:
    return [schemas.InvoiceSummary.model_validate(item) for item in crud.get_invoices(db)]


class ReferenceData:
    def __init__(
        self,
        cache: DataCache,
        session_factory: Callable[[], Session],
        settings: Optional[Settings] = None,
    ) -> None:
        self.cache = cache
        self._session_factory = session_factory
        self._settings = settings or get_settings()

    async def _fetch(self, reader: Callable[..., Any], *args: Any) -> Any:
        def run() -> Any:
            db = self._session_factory()
            try:
                return reader(db, *args)
            finally:
                db.close()

        return await fetch_with_timeout_and_retry(
            lambda: asyncio.to_thread(run),
            timeout=self._settings.fetch_timeout,
            attempts=self._settings.fetch_attempts,
            backoff=self._settings.fetch_backoff,
        )

    async def _cached(self, key: str, ttl: float, reader: Callable[..., Any], *args: Any) -> Any:
        value = self.cache.get(key)
        if value is not MISSING:
            return value
        value = await self._fetch(reader, *args)
        if value is not None:
            self.cache.set(key, value, ttl)
        return value

    async def cities(self) -> List[schemas.City]:
        return await self._cached(CACHE_KEYS.CITIES, CITIES_TTL, _read_cities)

    async def areas(self, city_id: int) -> List[schemas.Area]:
        return await self._cached(CACHE_KEYS.areas(city_id), AREAS_TTL, _read_areas, city_id)

    async def streets(self, city_id: int) -> List[schemas.StreetRecord]:
        return await self._cached(CACHE_KEYS.streets(city_id), STREETS_TTL, _read_streets, city_id)

    async def user_role(self, user_id: int) -> Optional[schemas.UserRoleInfo]:
        return await self._cached(CACHE_KEYS.user_role(user_id), USER_ROLE_TTL, _read_user_role, user_id)

    async def customers(self, active_only: bool = False) -> List[schemas.Customer]:
        key = CACHE_KEYS.CUSTOMERS_ACTIVE if active_only else CACHE_KEYS.CUSTOMERS
        return await self._cached(key, BILLING_TTL, _read_customers, active_only)

    async def pricing(self) -> List[schemas.Pricing]:
        return await self._cached(CACHE_KEYS.PRICING, BILLING_TTL, _read_pricing)

    async def templates(self) -> List[schemas.InvoiceTemplate]:
        return await self._cached(CACHE_KEYS.TEMPLATES, BILLING_TTL, _read_templates)

    async def invoices(self) -> List[schemas.InvoiceSummary]:
        return await self._cached(CACHE_KEYS.INVOICES, INVOICES_TTL, _read_invoices)

    async def prefetch_billing_data(self) -> Dict[str, list]:
        customers, pricing, templates = await asyncio.gather(
            self.customers(active_only=True), self.pricing(), self.templates()
        )
        return {"customers": customers, "pricing": pricing, "templates": templates}

    def invalidate_city_caches(self) -> None:
        self.cache.invalidate(CACHE_KEYS.CITIES)
        self.cache.invalidate_pattern("areas_")
        self.cache.invalidate_pattern("streets_")

    def invalidate_city_data_caches(self, city_id: int) -> None:
        self.cache.invalidate(CACHE_KEYS.areas(city_id))
        self.cache.invalidate(CACHE_KEYS.streets(city_id))

    def invalidate_user_cache(self, user_id: int) -> None:
        self.cache.invalidate(CACHE_KEYS.user_role(user_id))

    def invalidate_billing_caches(self) -> None:
        self.cache.invalidate_pattern("billing_")

    def invalidate_customers_cache(self) -> None:
        self.cache.invalidate(CACHE_KEYS.CUSTOMERS)
        self.cache.invalidate(CACHE_KEYS.CUSTOMERS_ACTIVE)

    def invalidate_invoices_cache(self) -> None:
        self.cache.invalidate(CACHE_KEYS.INVOICES)
