"""SQLite storage for country records and their day history.

One row per country in ``countries``; one row per (country, date) in
``day_records`` holding the DayRecord as JSON. The primary key on
``day_records`` enforces a single record per country and day.
"""
from __future__ import annotations

import json
import sqlite3
import threading
from pathlib import Path

from errors import NotFoundError, StorageError
from models import CountryInfo, CountryRecord, DayRecord

SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS countries (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL UNIQUE COLLATE NOCASE,
        iso2 TEXT,
        iso3 TEXT,
        latitude REAL,
        longitude REAL,
        flag_url TEXT,
        continent TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS day_records (
        country_id INTEGER NOT NULL REFERENCES countries(id),
        date TEXT NOT NULL,
        payload TEXT NOT NULL,
        PRIMARY KEY (country_id, date)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_day_records_date ON day_records (date)",
)

_INFO_COLUMNS = "iso2, iso3, latitude, longitude, flag_url, continent"


class HistoryStore:
    """Storage client with an explicit ``open``/``close`` lifecycle.

    A single connection is shared between the polling thread and request
    handlers; every statement runs under ``_lock``.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = path
        self._conn: sqlite3.Connection | None = None
        self._lock = threading.Lock()

    def open(self) -> "HistoryStore":
        if self._conn is not None:
            return self
        if str(self.path) != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        try:
            conn = sqlite3.connect(str(self.path), check_same_thread=False)
            conn.execute("PRAGMA foreign_keys = ON")
            for statement in SCHEMA:
                conn.execute(statement)
            conn.commit()
        except sqlite3.Error as err:
            raise StorageError(f"Cannot open database {self.path}: {err}") from err
        self._conn = conn
        return self

    def close(self) -> None:
        if self._conn is None:
            return
        with self._lock:
            self._conn.close()
            self._conn = None

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def __enter__(self) -> "HistoryStore":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StorageError("HistoryStore is not open.")
        return self._conn

    def _query(self, sql: str, params: tuple = ()) -> list[tuple]:
        with self._lock:
            try:
                return self._connection().execute(sql, params).fetchall()
            except sqlite3.Error as err:
                raise StorageError(f"Query failed: {err}") from err

    # -- reconciliation side --

    def find_day_records(self, day: str) -> dict[str, DayRecord]:
        """Return the stored record of ``day`` for every country that has one, keyed by casefolded name."""
        rows = self._query(
            "SELECT c.name, d.payload FROM day_records d JOIN countries c ON c.id = d.country_id "
            "WHERE d.date = ?",
            (day,),
        )
        return {name.casefold(): _load_record(payload) for name, payload in rows}

    def insert_day_record(self, name: str, info: CountryInfo | None, record: DayRecord) -> None:
        """Append ``record`` to the history of ``name``, creating the country when first seen.

        Raises:
            StorageError: If the country already holds a record for that date.
        """
        info = info or CountryInfo()
        payload = json.dumps(record.to_wire(), sort_keys=True)
        with self._lock:
            conn = self._connection()
            try:
                with conn:
                    conn.execute(
                        f"INSERT OR IGNORE INTO countries (name, {_INFO_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
                        (name, info.iso2, info.iso3, info.latitude, info.longitude, info.flag_url, info.continent),
                    )
                    (country_id,) = conn.execute("SELECT id FROM countries WHERE name = ?", (name,)).fetchone()
                    conn.execute(
                        "INSERT INTO day_records (country_id, date, payload) VALUES (?, ?, ?)",
                        (country_id, record.date, payload),
                    )
            except sqlite3.Error as err:
                raise StorageError(f"Insert of {name} {record.date} failed: {err}") from err

    def replace_day_record(self, name: str, record: DayRecord) -> None:
        """Overwrite the whole stored record of ``name`` for ``record.date``."""
        payload = json.dumps(record.to_wire(), sort_keys=True)
        with self._lock:
            conn = self._connection()
            try:
                with conn:
                    cursor = conn.execute(
                        "UPDATE day_records SET payload = ? WHERE date = ? "
                        "AND country_id = (SELECT id FROM countries WHERE name = ?)",
                        (payload, record.date, name),
                    )
            except sqlite3.Error as err:
                raise StorageError(f"Replace of {name} {record.date} failed: {err}") from err
        if cursor.rowcount == 0:
            raise StorageError(f"No stored record for {name} on {record.date} to replace.")

    # -- read side --

    def list_country_names(self) -> list[str]:
        return [name for (name,) in self._query("SELECT name FROM countries ORDER BY id")]

    def find_country(self, query: str) -> CountryRecord:
        """Resolve ``query`` by display name, then ISO2, then ISO3 (all case-insensitive).

        The returned record carries the info block only; history is loaded separately.

        Raises:
            NotFoundError: If nothing matches.
        """
        query = query.replace("%20", " ").strip()
        for column in ("name", "iso2", "iso3"):
            rows = self._query(
                f"SELECT name, {_INFO_COLUMNS} FROM countries WHERE {column} = ? COLLATE NOCASE "
                "ORDER BY id LIMIT 1",
                (query,),
            )
            if rows:
                return _country_from_row(rows[0])
        raise NotFoundError(f"Country {query} not found")

    def get_history(self, name: str, last_days: int | None = None) -> list[DayRecord]:
        """Return the ``last_days`` most recent records of ``name`` in ascending date order."""
        rows = self._query(
            "SELECT payload FROM ("
            "  SELECT d.date, d.payload FROM day_records d JOIN countries c ON c.id = d.country_id"
            "  WHERE c.name = ? ORDER BY d.date DESC LIMIT ?"
            ") ORDER BY date ASC",
            (name, -1 if last_days is None else last_days),
        )
        return [_load_record(payload) for (payload,) in rows]

    def get_all_histories(self, last_days: int | None = None) -> list[CountryRecord]:
        countries = self._query(f"SELECT name, {_INFO_COLUMNS} FROM countries ORDER BY id")
        records: list[CountryRecord] = []
        for row in countries:
            country = _country_from_row(row)
            country.history = self.get_history(country.name, last_days)
            records.append(country)
        return records


def _load_record(payload: str) -> DayRecord:
    try:
        return DayRecord.model_validate(json.loads(payload))
    except ValueError as err:
        raise StorageError(f"Corrupt stored day record: {err}") from err


def _country_from_row(row: tuple) -> CountryRecord:
    name, iso2, iso3, latitude, longitude, flag_url, continent = row
    return CountryRecord(
        name=name,
        info=CountryInfo(
            iso2=iso2,
            iso3=iso3,
            latitude=latitude,
            longitude=longitude,
            flag_url=flag_url,
            continent=continent,
        ),
    )
