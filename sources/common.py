from __future__ import annotations

import json
import socket
import time
import urllib.request
from datetime import datetime, timezone
from typing import Any
from urllib.error import URLError
from urllib.parse import urlparse

from errors import UpstreamFetchError

DEFAULT_TIMEOUT_SECONDS = 20
USER_AGENT = "pandemic-history/1.0"
DNS_PREFLIGHT_HOSTS = ("disease.sh",)

_DNS_PREFLIGHT_CACHE: dict[str, Any] = {
    "checked_at_epoch": None,
    "ok": None,
    "failures": [],
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _is_dns_error(err: Exception) -> bool:
    text = str(err).lower()
    if "nodename nor servname provided" in text or "name or service not known" in text:
        return True
    if isinstance(err, URLError):
        reason = getattr(err, "reason", None)
        if isinstance(reason, socket.gaierror):
            return True
        if reason and isinstance(reason, Exception):
            rtext = str(reason).lower()
            if "nodename nor servname provided" in rtext or "name or service not known" in rtext:
                return True
    return False


def dns_preflight(ttl_seconds: int = 300, hosts: tuple[str, ...] = DNS_PREFLIGHT_HOSTS) -> dict:
    now_epoch = int(time.time())
    checked = _DNS_PREFLIGHT_CACHE.get("checked_at_epoch")
    cached_ok = _DNS_PREFLIGHT_CACHE.get("ok")
    if isinstance(checked, int) and (now_epoch - checked) < ttl_seconds and cached_ok is not None:
        return {
            "checked_at_epoch": checked,
            "ok": bool(cached_ok),
            "failures": list(_DNS_PREFLIGHT_CACHE.get("failures") or []),
            "cached": True,
        }

    failures: list[dict] = []
    for host in hosts:
        try:
            socket.gethostbyname(host)
        except OSError as err:  # pragma: no cover - network dependent
            failures.append({"host": host, "error": str(err)})

    ok = len(failures) == 0
    _DNS_PREFLIGHT_CACHE["checked_at_epoch"] = now_epoch
    _DNS_PREFLIGHT_CACHE["ok"] = ok
    _DNS_PREFLIGHT_CACHE["failures"] = failures
    return {
        "checked_at_epoch": now_epoch,
        "ok": ok,
        "failures": failures,
        "cached": False,
    }


def fetch_url(url: str, timeout: int = DEFAULT_TIMEOUT_SECONDS, retries: int = 0) -> str:
    """Fetch ``url`` and return the decoded body.

    DNS failures short-circuit the retry loop when the resolver itself is down,
    so a cycle does not spend its whole budget sleeping on a dead network.
    """
    if urlparse(url).scheme not in {"http", "https"}:
        raise UpstreamFetchError(f"Unsupported URL scheme: {url}")

    last_err: Exception | None = None
    for attempt in range(retries + 1):
        try:
            headers = {
                "User-Agent": USER_AGENT,
                "Accept": "application/json",
            }
            req = urllib.request.Request(url, headers=headers)
            with urllib.request.urlopen(req, timeout=timeout) as response:
                return response.read().decode("utf-8", errors="ignore")
        except Exception as err:  # pragma: no cover - network dependent
            last_err = err
            if _is_dns_error(err):
                preflight = dns_preflight(ttl_seconds=60)
                if not preflight["ok"]:
                    failed = ", ".join(item["host"] for item in preflight.get("failures", [])[:3])
                    raise UpstreamFetchError(
                        f"DNS resolver unavailable. Preflight failed for: {failed}. Original error: {err}"
                    ) from err
            if attempt < retries:
                time.sleep(1.5 * (attempt + 1))
    raise UpstreamFetchError(f"Failed to fetch URL: {url}: {last_err}")


def fetch_json(url: str, timeout: int = DEFAULT_TIMEOUT_SECONDS, retries: int = 0) -> Any:
    text = fetch_url(url, timeout=timeout, retries=retries)
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise UpstreamFetchError(f"Invalid JSON from {url}: {exc}") from exc
