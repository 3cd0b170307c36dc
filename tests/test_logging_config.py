from __future__ import annotations

import unittest

from structlog.testing import capture_logs

from logging_config import configure_logging, get_logger


class LoggingConfigTests(unittest.TestCase):
    def test_get_logger_emits_events(self) -> None:
        log = get_logger("reconcile")
        with capture_logs() as events:
            log.info("cycle_finished", inserted=3)
        self.assertEqual(1, len(events))
        self.assertEqual("cycle_finished", events[0]["event"])
        self.assertEqual(3, events[0]["inserted"])

    def test_configure_logging_accepts_unknown_level(self) -> None:
        configure_logging("verbose")
        log = get_logger("api")
        with capture_logs() as events:
            log.warning("store_closed")
        self.assertEqual("warning", events[0]["log_level"])


if __name__ == "__main__":
    unittest.main()
