from __future__ import annotations

import argparse
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Protocol

from errors import ShiftDetectionError, StorageError, UpstreamFetchError
from logging_config import configure_logging, get_logger
from models import DAY_RECORD_FIELDS, CountryInfo, DayRecord
from settings import Settings
from sources import DaySelector, DiseaseShClient, UpstreamCountry, utc_now
from storage import HistoryStore

log = get_logger(__name__)

# Upstream "today*" counters and the stored day fields they become.
RENAMED_FIELDS = {
    "today_cases": "daily_cases",
    "today_deaths": "daily_deaths",
    "today_recovered": "daily_recovered",
}
# Identity fields live on the country, never on a day.
IDENTITY_FIELDS = frozenset({"updated", "country", "country_info", "continent"})

# Oldest first, so each day is enriched from an already reconciled previous day.
WINDOW = (
    (DaySelector.TWO_DAYS_AGO, 2),
    (DaySelector.YESTERDAY, 1),
    (DaySelector.TODAY, 0),
)


class RecordAction(str, Enum):
    INSERT = "insert"
    REPLACE = "replace"
    NOOP = "noop"


class UpstreamClient(Protocol):
    def fetch_countries(self, selector: DaySelector) -> list[UpstreamCountry]: ...

    def fetch_country(self, name: str) -> UpstreamCountry: ...


def normalize_snapshot(snapshot: UpstreamCountry, day: str) -> DayRecord:
    """Build the stored DayRecord for ``day`` from an upstream country snapshot.

    Only fields the upstream actually sent are set; identity fields are dropped
    and ``today*`` counters become ``daily*``.
    """
    values: dict[str, object] = {}
    for name in snapshot.model_fields_set:
        if name in IDENTITY_FIELDS:
            continue
        target = RENAMED_FIELDS.get(name, name)
        if target in DAY_RECORD_FIELDS:
            values[target] = getattr(snapshot, name)
    values["date"] = day
    return DayRecord(**values)


def country_info_from(snapshot: UpstreamCountry) -> CountryInfo:
    upstream = snapshot.country_info
    if upstream is None:
        return CountryInfo(continent=snapshot.continent)
    return CountryInfo(
        iso2=upstream.iso2,
        iso3=upstream.iso3,
        latitude=upstream.lat,
        longitude=upstream.long,
        flag_url=upstream.flag,
        continent=snapshot.continent,
    )


def compute_daily_tests(record: DayRecord, previous: DayRecord) -> int | None:
    if record.tests is None or previous.tests is None:
        return None
    daily_tests = record.tests - previous.tests
    # A zero delta on a day with new (or unknown) cases means the tests counter was not refreshed.
    if daily_tests == 0 and (record.daily_cases is None or record.daily_cases > 0):
        return None
    return daily_tests


def enrich_daily_tests(record: DayRecord, previous: DayRecord | None) -> DayRecord:
    """Return ``record`` with ``daily_tests`` set from the previous day's stored record.

    Without a previous record ``daily_tests`` stays absent.
    """
    if previous is None:
        return record
    values = record.model_dump(exclude_unset=True)
    values["daily_tests"] = compute_daily_tests(record, previous)
    return DayRecord(**values)


def detect_date_shift(
    bellwether: UpstreamCountry,
    now: datetime,
    cutoff_hour: int,
    grace_minutes: int,
) -> bool:
    """Tell whether the upstream "today" is still the previous UTC day.

    The bellwether publishes its daily figures in the afternoon. A non-null
    ``todayCases`` before ``cutoff_hour`` UTC therefore belongs to yesterday's
    publication, which upstream has not yet rolled over.
    """
    now = now.astimezone(timezone.utc)
    if bellwether.today_cases is None:
        return False
    since_midnight = now - now.replace(hour=0, minute=0, second=0, microsecond=0)
    if since_midnight < timedelta(minutes=grace_minutes):
        return False
    return now.hour < cutoff_hour


def diff_records(stored: DayRecord | None, incoming: DayRecord) -> RecordAction:
    if stored is None:
        return RecordAction.INSERT
    for name in DAY_RECORD_FIELDS:
        present = stored.has(name)
        if present != incoming.has(name):
            return RecordAction.REPLACE
        if present and getattr(stored, name) != getattr(incoming, name):
            return RecordAction.REPLACE
    return RecordAction.NOOP


def target_window(now: datetime, shifted: bool) -> list[tuple[DaySelector, str]]:
    today = now.astimezone(timezone.utc).date()
    if shifted:
        today -= timedelta(days=1)
    return [(selector, (today - timedelta(days=offset)).isoformat()) for selector, offset in WINDOW]


@dataclass
class DayOutcome:
    selector: str
    date: str
    inserted: int = 0
    replaced: int = 0
    unchanged: int = 0
    failed: int = 0
    error: str | None = None

    @property
    def writes(self) -> int:
        return self.inserted + self.replaced


@dataclass
class CycleReport:
    started_at: str
    finished_at: str | None = None
    shifted: bool | None = None
    aborted: str | None = None
    days: list[DayOutcome] = field(default_factory=list)

    @property
    def writes(self) -> int:
        return sum(day.writes for day in self.days)

    @property
    def ok(self) -> bool:
        return self.aborted is None and all(day.error is None for day in self.days)

    def to_dict(self) -> dict:
        payload = asdict(self)
        payload["writes"] = self.writes
        payload["ok"] = self.ok
        return payload


class Reconciler:
    """Runs reconciliation cycles against one upstream client and one store."""

    def __init__(
        self,
        store: HistoryStore,
        client: UpstreamClient,
        settings: Settings | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.client = client
        self.settings = settings or Settings()
        self.clock = clock

    def detect_shift(self, now: datetime) -> bool:
        bellwether = self.settings.bellwether
        try:
            snapshot = self.client.fetch_country(bellwether)
        except UpstreamFetchError as err:
            raise ShiftDetectionError(f"Bellwether {bellwether} unavailable: {err}") from err
        return detect_date_shift(
            snapshot,
            now,
            cutoff_hour=self.settings.shift_cutoff_hour,
            grace_minutes=self.settings.shift_grace_minutes,
        )

    def run_cycle(self) -> CycleReport:
        now = self.clock()
        report = CycleReport(started_at=now.replace(microsecond=0).isoformat())
        log.info("cycle_started", started_at=report.started_at)

        try:
            report.shifted = self.detect_shift(now)
        except ShiftDetectionError as err:
            report.aborted = str(err)
            report.finished_at = self.clock().replace(microsecond=0).isoformat()
            log.error("cycle_aborted", reason=report.aborted)
            return report

        if report.shifted:
            log.info("dates_shifted", bellwether=self.settings.bellwether)

        for selector, day in target_window(now, report.shifted):
            report.days.append(self.reconcile_day(selector, day))

        report.finished_at = self.clock().replace(microsecond=0).isoformat()
        log.info(
            "cycle_finished",
            shifted=report.shifted,
            writes=report.writes,
            failed_days=[day.date for day in report.days if day.error],
        )
        return report

    def reconcile_day(self, selector: DaySelector, day: str) -> DayOutcome:
        """Reconcile every upstream country for one target day.

        Fetch and bulk-read failures end this day only; a failed write skips one country.
        """
        outcome = DayOutcome(selector=selector.value, date=day)
        previous_day = (date.fromisoformat(day) - timedelta(days=1)).isoformat()
        try:
            snapshots = self.client.fetch_countries(selector)
            stored = self.store.find_day_records(day)
            previous = self.store.find_day_records(previous_day)
        except (UpstreamFetchError, StorageError) as err:
            outcome.error = str(err)
            log.error("day_failed", date=day, selector=selector.value, error=outcome.error)
            return outcome

        for snapshot in snapshots:
            name = snapshot.country
            key = name.casefold()
            record = enrich_daily_tests(normalize_snapshot(snapshot, day), previous.get(key))
            action = diff_records(stored.get(key), record)
            if action is RecordAction.NOOP:
                outcome.unchanged += 1
                continue
            try:
                if action is RecordAction.INSERT:
                    self.store.insert_day_record(name, country_info_from(snapshot), record)
                    outcome.inserted += 1
                    log.info("record_inserted", date=day, country=name)
                else:
                    self.store.replace_day_record(name, record)
                    outcome.replaced += 1
                    log.info("record_replaced", date=day, country=name)
            except StorageError as err:
                outcome.failed += 1
                log.error("record_write_failed", date=day, country=name, action=action.value, error=str(err))

        log.info(
            "day_reconciled",
            date=day,
            selector=selector.value,
            inserted=outcome.inserted,
            replaced=outcome.replaced,
            unchanged=outcome.unchanged,
            failed=outcome.failed,
        )
        return outcome


def build_reconciler(settings: Settings, store: HistoryStore) -> Reconciler:
    client = DiseaseShClient(
        settings.upstream_url,
        timeout=settings.fetch_timeout_seconds,
        retries=settings.fetch_retries,
    )
    return Reconciler(store, client, settings)


def main() -> int:
    parser = argparse.ArgumentParser(description="Run one reconciliation cycle against the upstream source.")
    parser.add_argument("--db", help="SQLite path (defaults to COVID_DB_PATH).")
    args = parser.parse_args()

    settings = Settings.from_env()
    configure_logging(settings.log_level)
    with HistoryStore(args.db or settings.db_path) as store:
        report = build_reconciler(settings, store).run_cycle()

    if report.aborted:
        print(f"Cycle aborted: {report.aborted}")
        return 1
    print(f"Cycle finished: shifted={report.shifted} writes={report.writes}")
    for day in report.days:
        status = f"error={day.error}" if day.error else "ok"
        print(
            f"- {day.date} ({day.selector}): inserted={day.inserted} replaced={day.replaced} "
            f"unchanged={day.unchanged} failed={day.failed} {status}"
        )
    return 0 if report.ok else 1


if __name__ == "__main__":
    raise SystemExit(main())
