from __future__ import annotations

import unittest
from datetime import date, timedelta

from fastapi.testclient import TestClient

from api.main import create_app
from models import CountryInfo, DayRecord
from settings import Settings
from storage import HistoryStore


def _day(offset: int) -> str:
    return (date(2024, 1, 1) + timedelta(days=offset)).isoformat()


class ApiTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = HistoryStore(":memory:").open()
        self.addCleanup(self.store.close)
        italy = CountryInfo(iso2="IT", iso3="ITA", latitude=42.8, longitude=12.8, flag_url="https://x/it.png")
        for offset in range(95):
            self.store.insert_day_record("Italy", italy, DayRecord(date=_day(offset), cases=offset, tests=offset * 10))
        self.store.insert_day_record("France", CountryInfo(iso2="FR", iso3="FRA"), DayRecord(date=_day(0), cases=1))
        app = create_app(Settings(polling_enabled=False), store=self.store)
        self.client = TestClient(app)

    def test_countries(self) -> None:
        res = self.client.get("/api/countries")
        self.assertEqual(200, res.status_code)
        self.assertEqual(["Italy", "France"], res.json())

    def test_history_all_defaults_to_ninety_days(self) -> None:
        res = self.client.get("/api/history/all")
        self.assertEqual(200, res.status_code)
        payload = {item["country"]: item["history"] for item in res.json()}
        self.assertEqual(90, len(payload["Italy"]))
        self.assertEqual(_day(94), payload["Italy"][-1]["date"])
        self.assertEqual(1, len(payload["France"]))

    def test_last_days_above_cap_is_rejected(self) -> None:
        for path in ("/api/history/all", "/api/history/italy", "/api/history/italy/cases"):
            res = self.client.get(path, params={"lastDays": 91})
            self.assertEqual(400, res.status_code)
            self.assertIn("error", res.json())

    def test_last_days_must_be_positive(self) -> None:
        res = self.client.get("/api/history/italy", params={"lastDays": 0})
        self.assertEqual(400, res.status_code)

    def test_non_numeric_last_days_uses_the_error_payload(self) -> None:
        for path in ("/api/history/all", "/api/history/italy", "/api/history/italy/cases"):
            res = self.client.get(path, params={"lastDays": "abc"})
            self.assertEqual(400, res.status_code)
            payload = res.json()
            self.assertEqual(["error"], list(payload))
            self.assertIn("lastDays", payload["error"])

    def test_country_history_window(self) -> None:
        res = self.client.get("/api/history/ITALY", params={"lastDays": 5})
        self.assertEqual(200, res.status_code)
        days = res.json()
        self.assertEqual([_day(offset) for offset in range(90, 95)], [day["date"] for day in days])
        self.assertEqual({"date": _day(94), "cases": 94, "tests": 940}, days[-1])

    def test_country_history_without_window_is_complete(self) -> None:
        res = self.client.get("/api/history/IT")
        self.assertEqual(95, len(res.json()))

    def test_single_field_history(self) -> None:
        res = self.client.get("/api/history/ita/tests", params={"lastDays": 2})
        self.assertEqual(200, res.status_code)
        self.assertEqual([{"date": _day(93), "tests": 930}, {"date": _day(94), "tests": 940}], res.json())

    def test_unknown_key_yields_nulls(self) -> None:
        res = self.client.get("/api/history/france/dailyTests")
        self.assertEqual([{"date": _day(0), "dailyTests": None}], res.json())

    def test_unknown_country_is_404(self) -> None:
        for path in ("/api/history/ZZ", "/api/history/ZZ/cases", "/api/countries/ZZ/info"):
            res = self.client.get(path)
            self.assertEqual(404, res.status_code)
            self.assertEqual({"error": "Country ZZ not found"}, res.json())

    def test_country_info(self) -> None:
        res = self.client.get("/api/countries/it/info")
        self.assertEqual(200, res.status_code)
        body = res.json()
        self.assertEqual("Italy", body["country"])
        self.assertEqual("ITA", body["iso3"])
        self.assertEqual("https://x/it.png", body["flagUrl"])
        self.assertNotIn("history", body)

    def test_status_without_polling(self) -> None:
        res = self.client.get("/api/status")
        self.assertEqual(200, res.status_code)
        self.assertEqual("disabled", res.json()["state"])


if __name__ == "__main__":
    unittest.main()
