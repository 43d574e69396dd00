"""
Refresh cycle: fetch both upstreams, derive every country, upsert the batch,
move the refresh marker and redraw the summary image.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, Dict, List, Tuple

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.concurrency import run_in_threadpool

from derivation import derive_country, random_multiplier
from errors import InternalError, UpstreamUnavailable
from models import CountryDB, CountryRecord, RefreshResult, Summary, to_iso
from services import project_summary, set_refresh_marker

logger = logging.getLogger(__name__)

COLUMNS = (
    "name",
    "capital",
    "region",
    "population",
    "currency_code",
    "exchange_rate",
    "estimated_gdp",
    "flag_url",
    "last_refreshed_at",
)


def utcnow() -> datetime:
    # Stored naive; every timestamp in the database is UTC.
    return datetime.now(timezone.utc).replace(tzinfo=None)


class RefreshOrchestrator:
    """
    Runs one refresh cycle against an injected session, gateway and renderer.

    Upstream failures abort before anything is written. The summary image is
    best-effort: its failure is logged and the cycle still succeeds.
    """

    def __init__(
        self,
        db: Session,
        gateway,
        renderer: Callable[[Summary], str],
        multiplier_fn: Callable[[], int] = random_multiplier,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.gateway = gateway
        self.renderer = renderer
        self.multiplier_fn = multiplier_fn
        self.clock = clock

    async def refresh(self) -> RefreshResult:
        countries = await self.gateway.fetch_countries()
        rates = await self.gateway.fetch_exchange_rates()

        if not isinstance(countries, list) or not isinstance(rates, dict):
            logger.error("Invalid data structure from external APIs")
            raise UpstreamUnavailable("external APIs")

        refreshed_at = self.clock()
        records = self.derive_all(countries, rates, refreshed_at)
        if not records:
            logger.error("Refresh produced no countries to write")
            raise InternalError()

        logger.info("Processing %d countries", len(records))
        inserted, modified, failed = await run_in_threadpool(self.bulk_upsert, records)

        marker = to_iso(refreshed_at)
        await run_in_threadpool(self.update_marker, marker)

        await self.project_summary(marker)

        return RefreshResult(
            inserted=inserted,
            modified=modified,
            failed=failed,
            last_refreshed_at=marker,
        )

    def derive_all(
        self, countries: List[Dict], rates: Dict[str, float], refreshed_at: datetime
    ) -> List[CountryRecord]:
        """
        Derive one record per raw entry.

        Entries that fail validation are skipped. When two entries share a
        name_key the later one wins.
        """
        records: Dict[str, CountryRecord] = {}
        for raw in countries:
            if not isinstance(raw, dict):
                logger.warning("Skipping non-object country entry: %r", raw)
                continue
            try:
                record = derive_country(raw, rates, self.multiplier_fn, refreshed_at)
            except (ValidationError, ValueError, TypeError) as e:
                logger.warning("Skipping invalid country %r: %s", raw.get("name"), e)
                continue
            records[record.name_key] = record
        return list(records.values())

    def bulk_upsert(self, records: List[CountryRecord]) -> Tuple[int, int, int]:
        """
        Upsert every record by name_key, each in its own savepoint.

        A record that fails is rolled back on its own and the rest still apply.

        Returns:
            Tuple of (inserted, modified, failed)
        """
        keys = [record.name_key for record in records]
        try:
            existing = {
                country.name_key: country
                for country in self.db.query(CountryDB).filter(CountryDB.name_key.in_(keys))
            }
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Database error loading existing countries")
            raise InternalError()

        inserted = modified = failed = 0
        for record in records:
            values = record.model_dump(include=set(COLUMNS))
            current = existing.get(record.name_key)
            try:
                with self.db.begin_nested():
                    if current is None:
                        self.db.add(CountryDB(name_key=record.name_key, **values))
                        changed = True
                    else:
                        changed = any(getattr(current, k) != v for k, v in values.items())
                        for key, value in values.items():
                            setattr(current, key, value)
                    self.db.flush()
            except SQLAlchemyError:
                failed += 1
                logger.exception("Failed to upsert country %s", record.name)
                continue

            if current is None:
                inserted += 1
            elif changed:
                modified += 1

        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Database error during refresh")
            raise InternalError()

        logger.info(
            "Database updated: %d inserted, %d updated, %d failed",
            inserted, modified, failed,
        )
        return inserted, modified, failed

    def update_marker(self, marker: str) -> None:
        try:
            set_refresh_marker(self.db, marker)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Failed to update refresh marker")
            raise InternalError()

    async def project_summary(self, last_refreshed_at: str) -> None:
        try:
            logger.info("Generating summary image")
            summary = await run_in_threadpool(project_summary, self.db, last_refreshed_at)
            await run_in_threadpool(self.renderer, summary)
        except Exception:
            logger.exception("Failed to generate summary image")
