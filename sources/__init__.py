from .common import UpstreamFetchError, dns_preflight, fetch_json, fetch_url, utc_now
from .disease_sh import DiseaseShClient, parse_country
from .types import DaySelector, UpstreamCountry, UpstreamCountryInfo

__all__ = [
    "DaySelector",
    "DiseaseShClient",
    "UpstreamCountry",
    "UpstreamCountryInfo",
    "UpstreamFetchError",
    "dns_preflight",
    "fetch_json",
    "fetch_url",
    "parse_country",
    "utc_now",
]
