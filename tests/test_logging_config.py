"""
Tests for the logging configuration

Run with:
    python -m pytest tests/test_logging_config.py -v
"""

import json
import logging
import os
import tempfile
import unittest

from orbit_tracker.logging_config import configure_logging, get_logger


class TestLoggingConfig(unittest.TestCase):
    """Test structured log output."""

    def tearDown(self):
        for handler in logging.getLogger().handlers:
            handler.close()
        configure_logging(level=logging.WARNING)

    def test_json_lines_to_file(self):
        """Test that events are written as JSON with level, logger name and fields."""
        with tempfile.TemporaryDirectory() as tmp:
            log_file = os.path.join(tmp, "tracker.log")
            configure_logging(level=logging.DEBUG, log_file=log_file, json_output=True)

            get_logger("orbit_tracker.test").info("tle_merged", norad_id=25544, source="network")
            for handler in logging.getLogger().handlers:
                handler.flush()

            with open(log_file, encoding="utf-8") as f:
                events = [json.loads(line) for line in f if line.strip()]

        self.assertEqual(len(events), 1)
        event = events[0]
        self.assertEqual(event["event"], "tle_merged")
        self.assertEqual(event["norad_id"], 25544)
        self.assertEqual(event["level"], "info")
        self.assertEqual(event["logger"], "orbit_tracker.test")
        self.assertIn("timestamp", event)

    def test_level_filter(self):
        """Test that events below the configured level are dropped."""
        with tempfile.TemporaryDirectory() as tmp:
            log_file = os.path.join(tmp, "tracker.log")
            configure_logging(level=logging.WARNING, log_file=log_file, json_output=True)

            logger = get_logger("orbit_tracker.test_level")
            logger.info("dropped")
            logger.warning("kept")
            for handler in logging.getLogger().handlers:
                handler.flush()

            with open(log_file, encoding="utf-8") as f:
                events = [json.loads(line)["event"] for line in f if line.strip()]

        self.assertEqual(events, ["kept"])


if __name__ == "__main__":
    unittest.main()
