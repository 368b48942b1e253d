"""Tests for pass reports, timing helpers and the Prometheus exporter."""

import logging
import unittest
from unittest.mock import MagicMock, patch

from bsky_topten.collector.results import PassReport, UnitResult
from bsky_topten.monitoring import metrics
from bsky_topten.monitoring.metrics import PrometheusExporter
from bsky_topten.monitoring.timing import PassTimer, format_duration


class TestPassReport(unittest.TestCase):

    def test_partition_and_values(self):
        report = PassReport("author feeds")
        report.add(UnitResult.success("did:plc:a", [1, 2]))
        report.add(UnitResult.failure("did:plc:b", RuntimeError("boom"), value=[3]))
        report.add(UnitResult.failure("did:plc:c", ValueError("bad")))

        self.assertEqual(len(report), 3)
        self.assertFalse(report.ok)
        self.assertEqual([r.key for r in report.succeeded], ["did:plc:a"])
        self.assertEqual([r.key for r in report.failed], ["did:plc:b", "did:plc:c"])
        self.assertEqual(report.values(), [[1, 2], [3]])
        self.assertEqual(report.failed[0].error, "RuntimeError: boom")
        self.assertEqual(report.summary(), "author feeds: 1 succeeded, 2 failed")

    def test_empty_report_is_ok(self):
        self.assertTrue(PassReport("empty").ok)


class TestFormatDuration(unittest.TestCase):

    def test_formats(self):
        self.assertEqual(format_duration(0), "0ms")
        self.assertEqual(format_duration(0.045), "45ms")
        self.assertEqual(format_duration(3723.045), "1h 2m 3s 45ms")
        self.assertEqual(format_duration(60), "1m")


class TestPassTimer(unittest.TestCase):

    def setUp(self):
        self.logger = MagicMock(spec=logging.Logger)
        self.exporter = MagicMock()

    def test_logs_start_and_summary(self):
        with PassTimer("Syncing accounts", self.logger, self.exporter) as timer:
            timer.summary = "3 inserted"

        messages = [call.args[0] for call in self.logger.info.call_args_list]
        self.assertEqual(messages[0], "Syncing accounts started")
        self.assertTrue(messages[1].startswith("Syncing accounts complete: 3 inserted ("))
        self.exporter.observe_pass.assert_called_once()
        self.assertTrue(self.exporter.observe_pass.call_args.kwargs["success"])

    def test_failure_logged_and_reraised(self):
        with self.assertRaises(RuntimeError):
            with PassTimer("Syncing posts", self.logger, self.exporter):
                raise RuntimeError("db gone")

        self.assertIn("Syncing posts failed", self.logger.error.call_args.args[0])
        self.assertFalse(self.exporter.observe_pass.call_args.kwargs["success"])


class TestPrometheusExporter(unittest.TestCase):

    def setUp(self):
        self.exporter = PrometheusExporter(port=9999)

    @patch("bsky_topten.monitoring.metrics.start_http_server")
    def test_start_server_once(self, mock_start):
        self.exporter.start_server()
        self.exporter.start_server()

        mock_start.assert_called_once_with(9999)
        self.assertTrue(self.exporter.server_started)

    @patch("bsky_topten.monitoring.metrics.start_http_server", side_effect=OSError("in use"))
    def test_start_server_failure_is_logged(self, mock_start):
        self.exporter.start_server()
        self.assertFalse(self.exporter.server_started)

    def test_counters(self):
        before = metrics.POSTS_PUBLISHED.labels(outcome="success")._value.get()
        self.exporter.record_post_published(True)
        after = metrics.POSTS_PUBLISHED.labels(outcome="success")._value.get()
        self.assertEqual(after - before, 1)

        self.exporter.set_tracked_accounts(42)
        self.assertEqual(metrics.TRACKED_ACCOUNTS._value.get(), 42)

    def test_time_request(self):
        with self.exporter.time_request() as timer:
            pass
        self.assertIsNotNone(timer.start_time)


if __name__ == "__main__":
    unittest.main()
