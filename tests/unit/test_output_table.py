"""Tests for the tab-delimited metrics and histogram tables."""
import math
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory
from unittest.mock import patch

from PyRaQC.interfaces.output import Histogram, RrbsCpgDetailMetrics
from PyRaQC.output.table import (
    HISTOGRAM_HEADER, TableIO, load_histograms, load_metrics,
    output_histograms, output_metrics
)


def _detail(position, rate):
    return RrbsCpgDetailMetrics("S1", "", "", "chr1", position, 10, 7, 3, rate,
                                None if rate is None else 1 - rate)


class TestTableIO(unittest.TestCase):

    def test_unsupported_mode(self):
        with self.assertRaises(NotImplementedError):
            TableIO("x.tab", 'a')

    def test_write_and_read(self):
        with TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "t.tab"
            with TableIO(path, 'w') as tab:
                tab.write(["a", "b"], [[1, "x"], [2, "y"]])
            self.assertEqual(path.read_text().splitlines()[0], "a\tb")
            with TableIO(path) as tab:
                header, rows = tab.read()
        self.assertEqual(header, ["a", "b"])
        self.assertEqual(rows, [["1", "x"], ["2", "y"]])


class TestMetricsTable(unittest.TestCase):

    def test_round_trip_with_not_computed(self):
        with TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "detail.tab"
            output_metrics(path, RrbsCpgDetailMetrics, [_detail(10, 0.3), _detail(20, None)])
            lines = path.read_text().splitlines()
            rows = load_metrics(path)

        self.assertEqual(lines[0].split("\t"), RrbsCpgDetailMetrics.header())
        self.assertTrue(lines[2].endswith("\tnan\tnan"))
        self.assertEqual(rows[0]["sample"], "S1")
        self.assertEqual(rows[0]["library"], "")
        self.assertEqual(rows[0]["position"], 10)
        self.assertEqual(rows[0]["conversion_rate"], 0.3)
        self.assertTrue(math.isnan(rows[1]["conversion_rate"]))

    def test_no_records_writes_header(self):
        with TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "empty.tab"
            output_metrics(path, RrbsCpgDetailMetrics, [])
            lines = path.read_text().splitlines()
            rows = load_metrics(path)
        self.assertEqual(lines, ["\t".join(RrbsCpgDetailMetrics.header())])
        self.assertEqual(rows, [])

    def test_rerun_without_records_replaces_rows(self):
        with TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "detail.tab"
            output_metrics(path, RrbsCpgDetailMetrics, [_detail(10, 0.3), _detail(20, 0.5)])
            output_metrics(path, RrbsCpgDetailMetrics, [])
            lines = path.read_text().splitlines()
        self.assertEqual(len(lines), 1)
        self.assertEqual(lines[0].split("\t"), RrbsCpgDetailMetrics.header())

    def test_write_failure_is_logged(self):
        with TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "missing_dir" / "detail.tab"
            with self.assertLogs("PyRaQC.output.table", level="ERROR"):
                with self.assertRaises(IOError):
                    output_metrics(path, RrbsCpgDetailMetrics, [_detail(10, 0.3)])


class TestHistogramTable(unittest.TestCase):

    def test_round_trip(self):
        histograms = [
            Histogram("coverage_by_position", "ALL_READS", "normalized_position", "coverage",
                      {0: 1, 1: 2}),
            Histogram("cpg_count_by_conversion_rate", "SAMPLE:S1", "conversion_rate",
                      "cpg_sites", {0.0: 4, 0.3: 1}),
        ]
        with TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "hist.tab"
            output_histograms(path, histograms)
            with TableIO(path) as tab:
                header, rows = tab.read()
            loaded = load_histograms(path)

        self.assertEqual(tuple(header), HISTOGRAM_HEADER)
        self.assertEqual(len(rows), 4)
        self.assertEqual(loaded, histograms)

    @patch("PyRaQC.output.table.TableIO.write")
    def test_empty_histograms_write_header_only(self, write):
        with TemporaryDirectory() as tmpdir:
            output_histograms(Path(tmpdir) / "hist.tab", [])
        write.assert_called_once()
        self.assertEqual(write.call_args[0][0], HISTOGRAM_HEADER)
        self.assertEqual(list(write.call_args[0][1]), [])
