"""Tab-delimited metrics and histogram tables.

Key components:
- TableIO: tab-delimited reader/writer with context management
- output_metrics(): one row per grouping key (or per CpG site)
- output_histograms(): long-format histogram table
- load_metrics() / load_histograms(): read the tables back

None values are written as the "not computed" sentinel.
"""
from __future__ import annotations

import csv
import logging
import os
from collections import defaultdict
from typing import Any, Dict, Iterable, List, Optional, Sequence, TextIO, Tuple, Type, cast

import sys
if sys.version_info >= (3, 11):
    from typing import Self
else:
    from typing_extensions import Self

from PyRaQC.interfaces.output import Histogram, MetricsRecord, as_output_value
from PyRaQC.utils.output import catch_IOError

RNA_METRICS_SUFFIX = ".rna_metrics.tab"
RNA_COVERAGE_SUFFIX = ".rna_coverage.tab"
RRBS_SUMMARY_SUFFIX = ".rrbs_summary_metrics.tab"
RRBS_DETAIL_SUFFIX = ".rrbs_detail_metrics.tab"
RRBS_HISTOGRAM_SUFFIX = ".rrbs_histograms.tab"

HISTOGRAM_HEADER = ("histogram", "key", "bin_label", "bin", "value_label", "value")

logger = logging.getLogger(__name__)


class TableIO:
    """Tab-delimited table file.

    Attributes:
        DIALECT: csv dialect of every PyRaQC table
        path: File path
        mode: 'r' or 'w'
        fp: Open file object, None when closed
    """
    DIALECT = "excel-tab"

    def __init__(self, path: "os.PathLike[str]", mode: str = 'r') -> None:
        if mode not in ('r', 'w'):
            raise NotImplementedError(f"Unsupported mode: {mode}")
        self.path = path
        self.mode = mode
        self.fp: Optional[TextIO] = None

    def open(self) -> None:
        self.fp = cast(TextIO, open(self.path, self.mode, newline=''))

    def __enter__(self) -> Self:
        self.open()
        return self

    def __exit__(self, _ex_type: Optional[type], _ex_value: Optional[BaseException],
                 _trace: Optional[Any]) -> None:
        if self.fp is not None:
            self.fp.close()
            self.fp = None

    def read(self) -> Tuple[List[str], List[List[str]]]:
        """Return (header, rows) as strings."""
        assert self.fp is not None, "File not opened"
        tab = csv.reader(self.fp, dialect=TableIO.DIALECT)
        header = next(tab)
        return header, [row for row in tab]

    def write(self, header: Sequence[str], body: Iterable[Sequence[Any]]) -> None:
        assert self.fp is not None, "File not opened"
        tab = csv.writer(self.fp, dialect=TableIO.DIALECT)
        tab.writerow(header)
        tab.writerows(body)


@catch_IOError(logger)
def output_metrics(path: "os.PathLike[str]", record_type: Type[MetricsRecord],
                   records: Sequence[MetricsRecord]) -> None:
    """Write metric records of `record_type`, one row each.

    The header always comes from `record_type`, so an empty sequence
    still replaces any previous table with a header-only one.
    """
    logger.info("Output '{}'".format(path))
    with TableIO(path, 'w') as tab:
        tab.write(record_type.header(), (record.values() for record in records))


@catch_IOError(logger)
def output_histograms(path: "os.PathLike[str]", histograms: Iterable[Histogram]) -> None:
    logger.info("Output '{}'".format(path))
    with TableIO(path, 'w') as tab:
        tab.write(HISTOGRAM_HEADER, (
            (h.name, h.key, h.bin_label, b, h.value_label, as_output_value(v))
            for h in histograms for b, v in h.bins.items()
        ))


def _to_number(value: str) -> Any:
    for typefunc in (int, float):
        try:
            return typefunc(value)
        except ValueError:
            pass
    return value


@catch_IOError(logger)
def load_metrics(path: "os.PathLike[str]") -> List[Dict[str, Any]]:
    """Read a metrics table back as dicts. Numeric cells are converted;
    the "not computed" sentinel becomes float nan."""
    logger.info("Load metrics from '{}'".format(path))
    with TableIO(path) as tab:
        header, rows = tab.read()
    return [dict(zip(header, map(_to_number, row))) for row in rows]


@catch_IOError(logger)
def load_histograms(path: "os.PathLike[str]") -> List[Histogram]:
    logger.info("Load histograms from '{}'".format(path))
    with TableIO(path) as tab:
        header, rows = tab.read()

    histograms: Dict[Tuple[str, str], Histogram] = {}
    bins: Dict[Tuple[str, str], Dict[Any, Any]] = defaultdict(dict)
    for name, key, bin_label, b, value_label, v in rows:
        if (name, key) not in histograms:
            histograms[(name, key)] = Histogram(name, key, bin_label, value_label)
        bins[(name, key)][_to_number(b)] = _to_number(v)
    for ident, histogram in histograms.items():
        histogram.bins = bins[ident]
    return list(histograms.values())
