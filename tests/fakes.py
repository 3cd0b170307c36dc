"""Shared test doubles for the reconciliation tests."""
from __future__ import annotations

from datetime import datetime, timezone

from errors import UpstreamFetchError
from sources.disease_sh import parse_country
from sources.types import DaySelector, UpstreamCountry

ISO = {
    "Italy": ("IT", "ITA", 42.8333, 12.8333),
    "France": ("FR", "FRA", 46.0, 2.0),
    "Japan": ("JP", "JPN", 36.0, 138.0),
}


def raw_country(name: str = "Italy", **overrides) -> dict:
    iso2, iso3, lat, long = ISO.get(name, ("ZZ", "ZZZ", 0.0, 0.0))
    payload = {
        "updated": 1710000000000,
        "country": name,
        "countryInfo": {
            "_id": 380,
            "iso2": iso2,
            "iso3": iso3,
            "lat": lat,
            "long": long,
            "flag": f"https://disease.sh/assets/img/flags/{iso2.lower()}.png",
        },
        "cases": 26000000,
        "todayCases": 1200,
        "deaths": 190000,
        "todayDeaths": 12,
        "recovered": 25000000,
        "todayRecovered": 900,
        "active": 810000,
        "critical": 100,
        "casesPerOneMillion": 431000.5,
        "deathsPerOneMillion": 3150.2,
        "tests": 270000000,
        "testsPerOneMillion": 4480000.1,
        "population": 60300000,
        "continent": "Europe",
        "oneCasePerPeople": 2,
        "oneDeathPerPeople": 317,
        "oneTestPerPeople": 0,
        "activePerOneMillion": 13430.1,
        "recoveredPerOneMillion": 414000.7,
        "criticalPerOneMillion": 1.66,
    }
    payload.update(overrides)
    return payload


def snapshot(name: str = "Italy", **overrides) -> UpstreamCountry:
    return UpstreamCountry.model_validate(raw_country(name, **overrides))


class FakeClient:
    """In-memory upstream keyed by day selector."""

    def __init__(
        self,
        days: dict[DaySelector, list[dict]] | None = None,
        bellwether: dict | None = None,
        failing: set[DaySelector] | None = None,
    ) -> None:
        self.days = days or {}
        self.bellwether = bellwether
        self.failing = failing or set()
        self.calls: list[str] = []

    def fetch_countries(self, selector: DaySelector) -> list[UpstreamCountry]:
        self.calls.append(selector.value)
        if selector in self.failing:
            raise UpstreamFetchError(f"Failed to fetch URL: {selector.value}: HTTP Error 502")
        snapshots = (parse_country(raw) for raw in self.days.get(selector, []))
        return [s for s in snapshots if s is not None]

    def fetch_country(self, name: str) -> UpstreamCountry:
        self.calls.append(f"country:{name}")
        if self.bellwether is None:
            raise UpstreamFetchError(f"Failed to fetch URL: countries/{name}: timed out")
        return UpstreamCountry.model_validate(self.bellwether)


def fixed_clock(value: datetime):
    value = value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value
    return lambda: value
