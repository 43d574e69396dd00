"""
Read-side business logic: country queries, status and the summary projection.
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from errors import InternalError, NotFound, ValidationFailed
from models import (
    LAST_REFRESHED_KEY,
    CountryDB,
    CountryResponse,
    RefreshMeta,
    Summary,
    to_iso,
)

logger = logging.getLogger(__name__)

TOP_N = 5


class CountrySort(str, Enum):
    gdp_desc = "gdp_desc"
    gdp_asc = "gdp_asc"


def normalize_name(name: Optional[str]) -> str:
    """Lookup key for a user-supplied name; blank names are rejected."""
    if name is None or not name.strip():
        raise ValidationFailed({"name": "is required"})
    return name.strip().lower()


def get_refresh_marker(db: Session) -> Optional[str]:
    """Return the global last_refreshed_at marker, or None before the first refresh."""
    meta = db.get(RefreshMeta, LAST_REFRESHED_KEY)
    return meta.value if meta else None


def set_refresh_marker(db: Session, value: str) -> None:
    """Create or overwrite the last_refreshed_at marker. Caller commits."""
    meta = db.get(RefreshMeta, LAST_REFRESHED_KEY)
    if meta is None:
        db.add(RefreshMeta(key=LAST_REFRESHED_KEY, value=value))
    else:
        meta.value = value


class CountryQueryService:
    """Filter, sort, look up and delete persisted countries."""

    def __init__(self, db: Session):
        self.db = db

    def list_countries(
        self,
        region: Optional[str] = None,
        currency_code: Optional[str] = None,
        sort: Optional[CountrySort] = None,
    ) -> List[CountryDB]:
        """
        Get all countries with optional filtering and sorting.

        Filters are exact matches. GDP sorts place rows with no estimated_gdp
        last in both directions; ties and the unsorted case keep id order.
        """
        query = self.db.query(CountryDB)

        if region:
            query = query.filter(CountryDB.region == region)

        if currency_code:
            query = query.filter(CountryDB.currency_code == currency_code)

        if sort == CountrySort.gdp_desc:
            query = query.order_by(
                CountryDB.estimated_gdp.is_(None),
                CountryDB.estimated_gdp.desc(),
                CountryDB.id,
            )
        elif sort == CountrySort.gdp_asc:
            query = query.order_by(
                CountryDB.estimated_gdp.is_(None),
                CountryDB.estimated_gdp.asc(),
                CountryDB.id,
            )
        else:
            query = query.order_by(CountryDB.id)

        return query.all()

    def _find(self, name: Optional[str]) -> Optional[CountryDB]:
        name_key = normalize_name(name)
        return self.db.query(CountryDB).filter(CountryDB.name_key == name_key).first()

    def get_by_name(self, name: Optional[str]) -> CountryDB:
        """
        Get country by name (case-insensitive).

        Raises:
            ValidationFailed: name is blank
            NotFound: no country matches
        """
        country = self._find(name)
        if country is None:
            raise NotFound()
        return country

    def delete_by_name(self, name: Optional[str]) -> None:
        """
        Delete country by name (case-insensitive).

        name_key is unique, so at most one row is removed.
        """
        country = self._find(name)
        if country is None:
            raise NotFound()
        self.db.delete(country)
        self.db.commit()
        logger.info("Deleted country %s", country.name)

    def status(self) -> Tuple[int, Optional[str]]:
        """
        Get total countries and last refresh timestamp.

        Returns:
            Tuple of (total_countries, last_refreshed_at)
        """
        total = self.db.query(func.count(CountryDB.id)).scalar()
        return total, get_refresh_marker(self.db)


def get_top_countries_by_gdp(db: Session, limit: int = TOP_N) -> List[CountryDB]:
    """Top countries by estimated GDP, ignoring rows with no or zero GDP."""
    return db.query(CountryDB).filter(
        CountryDB.estimated_gdp.isnot(None),
        CountryDB.estimated_gdp > 0,
    ).order_by(
        CountryDB.estimated_gdp.desc(),
        CountryDB.id,
    ).limit(limit).all()


def project_summary(db: Session, last_refreshed_at: Optional[str] = None) -> Summary:
    """
    Build the summary snapshot from the store alone.

    last_refreshed_at falls back to the stored marker, then to the current time.
    """
    total = db.query(func.count(CountryDB.id)).scalar()
    top = get_top_countries_by_gdp(db)
    if last_refreshed_at is None:
        last_refreshed_at = get_refresh_marker(db) or to_iso(datetime.now(timezone.utc))

    return Summary(
        total=total,
        top5=[CountryResponse.model_validate(country) for country in top],
        last_refreshed_at=last_refreshed_at,
    )


async def regenerate_summary_image(db: Session, renderer: Callable[[Summary], str]) -> str:
    """
    Recompute the summary and render it, with no upstream calls.

    Unlike the refresh path, a rendering failure is reported to the caller.
    """
    summary = await run_in_threadpool(project_summary, db)
    try:
        return await run_in_threadpool(renderer, summary)
    except Exception:
        logger.exception("Failed to generate summary image")
        raise InternalError("Failed to generate summary image")
