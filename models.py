from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Statistic fields of a stored day, checked one by one when diffing.
DAY_RECORD_FIELDS: tuple[str, ...] = (
    "date",
    "cases",
    "daily_cases",
    "deaths",
    "daily_deaths",
    "recovered",
    "daily_recovered",
    "active",
    "critical",
    "cases_per_one_million",
    "deaths_per_one_million",
    "tests",
    "tests_per_one_million",
    "population",
    "one_case_per_people",
    "one_death_per_people",
    "one_test_per_people",
    "active_per_one_million",
    "recovered_per_one_million",
    "critical_per_one_million",
    "daily_tests",
)


class WireModel(BaseModel):
    """camelCase on the wire and in storage, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DayRecord(WireModel):
    """Statistics for one country on one calendar day.

    A field that was never set is absent (``model_fields_set``), which is not
    the same as a field set to ``None`` (reported as unknown).
    """

    date: str
    cases: int | None = None
    daily_cases: int | None = None
    deaths: int | None = None
    daily_deaths: int | None = None
    recovered: int | None = None
    daily_recovered: int | None = None
    active: int | None = None
    critical: int | None = None
    cases_per_one_million: float | None = None
    deaths_per_one_million: float | None = None
    tests: int | None = None
    tests_per_one_million: float | None = None
    population: int | None = None
    one_case_per_people: float | None = None
    one_death_per_people: float | None = None
    one_test_per_people: float | None = None
    active_per_one_million: float | None = None
    recovered_per_one_million: float | None = None
    critical_per_one_million: float | None = None
    daily_tests: int | None = None

    def has(self, name: str) -> bool:
        return name in self.model_fields_set

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, exclude_unset=True)


class CountryInfo(WireModel):
    iso2: str | None = None
    iso3: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    flag_url: str | None = None
    continent: str | None = None


class CountryRecord(WireModel):
    name: str
    info: CountryInfo = Field(default_factory=CountryInfo)
    history: list[DayRecord] = Field(default_factory=list)
