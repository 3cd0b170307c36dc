"""Client for the disease.sh per-country endpoint.

``/countries?allowNull=true`` returns one object per country; the
``yesterday`` and ``twoDaysAgo`` flags return the same shape for earlier
upstream days. ``allowNull`` keeps unreported figures as ``null`` instead of 0.
"""
from __future__ import annotations

from typing import Any
from urllib.parse import quote

from pydantic import ValidationError

from errors import UpstreamFetchError
from logging_config import get_logger
from settings import DEFAULT_UPSTREAM_URL

from .common import DEFAULT_TIMEOUT_SECONDS, fetch_json
from .types import DaySelector, UpstreamCountry

log = get_logger(__name__)


class DiseaseShClient:
    def __init__(
        self,
        base_url: str = DEFAULT_UPSTREAM_URL,
        timeout: int = DEFAULT_TIMEOUT_SECONDS,
        retries: int = 0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.retries = retries

    def countries_url(self, selector: DaySelector) -> str:
        return f"{self.base_url}/countries?allowNull=true{selector.query}"

    def country_url(self, name: str) -> str:
        return f"{self.base_url}/countries/{quote(name)}?allowNull=true"

    def fetch_countries(self, selector: DaySelector) -> list[UpstreamCountry]:
        """Return every country snapshot for one upstream day.

        Raises:
            UpstreamFetchError: On network/HTTP failure or a payload that is not a list.
        """
        url = self.countries_url(selector)
        payload = fetch_json(url, timeout=self.timeout, retries=self.retries)
        if not isinstance(payload, list):
            raise UpstreamFetchError(f"Expected a list of countries from {url}, got {type(payload).__name__}")

        snapshots: list[UpstreamCountry] = []
        for index, raw in enumerate(payload):
            snapshot = parse_country(raw)
            if snapshot is None:
                log.warning("upstream_entry_skipped", selector=selector.value, index=index)
                continue
            snapshots.append(snapshot)
        return snapshots

    def fetch_country(self, name: str) -> UpstreamCountry:
        """Return the current snapshot of a single country."""
        url = self.country_url(name)
        payload = fetch_json(url, timeout=self.timeout, retries=self.retries)
        if isinstance(payload, dict) and "message" in payload and "country" not in payload:
            # disease.sh answers unknown countries with {"message": "..."} and HTTP 404
            raise UpstreamFetchError(f"Upstream rejected {url}: {payload['message']}")
        snapshot = parse_country(payload)
        if snapshot is None:
            raise UpstreamFetchError(f"Malformed country payload from {url}")
        return snapshot


def parse_country(raw: Any) -> UpstreamCountry | None:
    """Validate one upstream entry, dropping only the fields that fail.

    A mistyped figure (``"N/A"`` where a number is expected) is removed and the
    rest of the entry is kept, so it is stored with that field absent. Returns
    ``None`` when the entry is not an object or has no country name.
    """
    if not isinstance(raw, dict):
        return None
    payload = dict(raw)
    dropped: list[str] = []
    while True:
        try:
            snapshot = UpstreamCountry.model_validate(payload)
            break
        except ValidationError as err:
            invalid = {error["loc"][0] for error in err.errors() if error["loc"] and error["loc"][0] in payload}
            if not invalid:
                return None
            for key in invalid:
                del payload[key]
                dropped.append(str(key))
    if dropped:
        log.warning("upstream_fields_dropped", country=payload.get("country"), fields=sorted(dropped))
    if not snapshot.country:
        return None
    return snapshot
