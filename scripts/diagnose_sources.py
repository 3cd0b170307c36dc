from __future__ import annotations

import argparse
import json
import platform
import sys
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from errors import UpstreamFetchError
from reconcile import detect_date_shift, target_window
from settings import Settings
from sources import DaySelector, DiseaseShClient, dns_preflight, utc_now


def classify_detail(detail: str) -> str:
    text = (detail or "").lower()
    if "dns resolver unavailable" in text or "nodename nor servname" in text or "name or service not known" in text:
        return "dns"
    if "timed out" in text or "timeout" in text:
        return "timeout"
    if "403" in text or "forbidden" in text or "429" in text:
        return "blocked"
    if "invalid json" in text or "expected a list" in text:
        return "payload"
    return "other"


def main() -> int:
    parser = argparse.ArgumentParser(description="Diagnose upstream reachability and the date-shift decision.")
    parser.add_argument("--json", action="store_true", help="Emit JSON instead of text.")
    args = parser.parse_args()

    settings = Settings.from_env()
    client = DiseaseShClient(settings.upstream_url, timeout=settings.fetch_timeout_seconds)
    now = utc_now()
    preflight = dns_preflight(ttl_seconds=0)

    rows: list[dict] = []
    for selector in DaySelector:
        started = time.time()
        try:
            snapshots = client.fetch_countries(selector)
            detail = f"{len(snapshots)} countries"
            error_class = None
        except UpstreamFetchError as err:
            snapshots = []
            detail = str(err)
            error_class = classify_detail(detail)
        rows.append(
            {
                "selector": selector.value,
                "url": client.countries_url(selector),
                "countries": len(snapshots),
                "error_class": error_class,
                "detail": detail,
                "elapsed_ms": int((time.time() - started) * 1000),
            }
        )

    shift: dict = {"bellwether": settings.bellwether, "cutoff_hour": settings.shift_cutoff_hour}
    try:
        bellwether = client.fetch_country(settings.bellwether)
        shifted = detect_date_shift(
            bellwether,
            now,
            cutoff_hour=settings.shift_cutoff_hour,
            grace_minutes=settings.shift_grace_minutes,
        )
        shift.update(
            {
                "today_cases": bellwether.today_cases,
                "shifted": shifted,
                "window": [{"selector": s.value, "date": d} for s, d in target_window(now, shifted)],
            }
        )
    except UpstreamFetchError as err:
        shift.update({"shifted": None, "error_class": classify_detail(str(err)), "detail": str(err)})

    summary = {
        "timestamp": now.isoformat(),
        "python_version": platform.python_version(),
        "dns_preflight": preflight,
        "reachable_selectors": sum(1 for r in rows if r["error_class"] is None),
        "rows": rows,
        "date_shift": shift,
    }

    if args.json:
        print(json.dumps(summary, indent=2))
    else:
        print(f"Python: {summary['python_version']}")
        print(f"DNS preflight ok: {preflight.get('ok')} failures={len(preflight.get('failures', []))}")
        print(f"Reachable day selectors: {summary['reachable_selectors']}/{len(rows)}")
        for row in rows:
            print(
                f"{row['selector']}: countries={row['countries']} class={row['error_class']} "
                f"elapsed_ms={row['elapsed_ms']} detail={row['detail']}"
            )
        print(f"Date shift: {shift.get('shifted')} (bellwether={settings.bellwether}, cutoff={settings.shift_cutoff_hour}h UTC)")
        for item in shift.get("window", []):
            print(f"  {item['selector']} -> {item['date']}")

    return 0 if summary["reachable_selectors"] == len(rows) else 1


if __name__ == "__main__":
    raise SystemExit(main())
