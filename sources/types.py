"""Typed view of the raw upstream payload.

Every field is optional: a malformed or partial entry is carried through with
the missing fields absent rather than rejected.
"""
from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class DaySelector(str, Enum):
    TODAY = "today"
    YESTERDAY = "yesterday"
    TWO_DAYS_AGO = "twoDaysAgo"

    @property
    def query(self) -> str:
        if self is DaySelector.TODAY:
            return ""
        return f"&{self.value}=true"


class _UpstreamModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class UpstreamCountryInfo(_UpstreamModel):
    iso2: str | None = None
    iso3: str | None = None
    lat: float | None = None
    long: float | None = None
    flag: str | None = None


class UpstreamCountry(_UpstreamModel):
    updated: int | None = None
    country: str | None = None
    country_info: UpstreamCountryInfo | None = None
    continent: str | None = None
    cases: int | None = None
    today_cases: int | None = None
    deaths: int | None = None
    today_deaths: int | None = None
    recovered: int | None = None
    today_recovered: int | None = None
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
