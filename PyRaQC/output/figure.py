"""Matplotlib plots of the emitted histograms.

One PDF page per histogram name, with one line (or bar series) per
grouping key. Callers check MetricsReport.has_histogram_data first;
nothing here is drawn for all-zero histograms.
"""
from __future__ import annotations

import logging
import os
from collections import OrderedDict
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from PyRaQC.core.finisher import (
    CONVERSION_HISTOGRAM, COVERAGE_HISTOGRAM, CPG_COVERAGE_HISTOGRAM
)
from PyRaQC.interfaces.output import Histogram, MetricsReport
from PyRaQC.utils.output import catch_IOError

logger = logging.getLogger(__name__)

try:
    import matplotlib
    matplotlib.use("Agg")
    import matplotlib.pyplot as plt  # type: ignore[import-untyped]
    from matplotlib.backends.backend_pdf import PdfPages  # type: ignore[import-untyped]
except Exception:
    logger.error("Failed to import matplotlib.")
    import traceback
    logger.warning("Exception traceback:\n|" +
                   traceback.format_exc().replace('\n', "\n|"))
    raise

TITLES = {
    COVERAGE_HISTOGRAM: "Normalized coverage along transcripts (5' to 3')",
    CONVERSION_HISTOGRAM: "CpG sites by conversion rate",
    CPG_COVERAGE_HISTOGRAM: "CpG sites by coverage",
}


def _feed_pdf_page(pp: Any) -> None:
    pp.savefig()
    plt.close()


def _group_by_name(histograms: Iterable[Histogram]) -> Dict[str, List[Histogram]]:
    grouped: Dict[str, List[Histogram]] = OrderedDict()
    for h in histograms:
        if h:
            grouped.setdefault(h.name, []).append(h)
    return grouped


def plot_histograms(name: str, histograms: List[Histogram], title: str,
                    subtitle: Optional[str] = None) -> None:
    """Draw histograms sharing one name on the current figure."""
    plt.figure()
    for h in histograms:
        xs = list(h.bins.keys())
        ys = list(h.bins.values())
        if h.name == COVERAGE_HISTOGRAM:
            plt.plot(xs, ys, label=h.key)
        else:
            plt.step(xs, ys, where="mid", label=h.key)
    first = histograms[0]
    plt.xlabel(first.bin_label.replace('_', ' '))
    plt.ylabel(first.value_label.replace('_', ' '))
    heading = [title, name]
    if subtitle:
        heading.append(subtitle)
    plt.title("\n".join(heading))
    plt.legend(loc="best", fontsize="small")


@catch_IOError(logger)
def plot_figures(outfile: "os.PathLike[str]", report: MetricsReport) -> bool:
    """Write a multi-page PDF of every non-empty histogram.

    Returns:
        False if there was nothing to plot
    """
    if not report.has_histogram_data:
        logger.info("All histograms are empty; skip plotting.")
        return False

    outfile_path = Path(outfile)
    logger.info("Output '{}'".format(outfile_path))
    name = outfile_path.stem

    with PdfPages(os.fspath(outfile_path)) as pp:
        for hist_name, histograms in _group_by_name(report.histograms).items():
            plot_histograms(name, histograms, TITLES.get(hist_name, hist_name),
                            report.subtitle)
            _feed_pdf_page(pp)
    return True
