"""pyraqc-rrbs: bisulfite conversion metrics of RRBS alignments."""
from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from . import entrypoint, logging_version
from .core.accumulator import LevelAccumulator
from .core.classifier import ClassifierKind, MethylationContext, make_classifier
from .core.exceptions import ConfigError
from .core.finisher import finish_rrbs
from .core.models import AlignmentRecord
from .core.multilevel import MultiLevelAccumulator
from .handler.pipeline import MetricsPipeline
from .interfaces.config import RrbsConfig
from .interfaces.output import MetricsReport, RrbsCpgDetailMetrics, RrbsSummaryMetrics
from .output.table import (
    RRBS_DETAIL_SUFFIX, RRBS_HISTOGRAM_SUFFIX, RRBS_SUMMARY_SUFFIX,
    output_histograms, output_metrics
)
from .reader.bam import BAMFileProcessor, BAMValidationError
from .reader.reference import ReferenceReader
from .utils.logfmt import set_rootlogger
from .utils.output import get_output_basename, prepare_outdir, warn_overwrite
from .utils.parsearg import get_rrbs_parser
from .utils.progress import ProgressBar, ReferencePositionProgress

logger = logging.getLogger(__name__)

PLOTFILE_SUFFIX = ".rrbs_metrics.pdf"


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = get_rrbs_parser()
    args = parser.parse_args(argv)

    set_rootlogger(args.color, args.log_level)
    logging_version(logger)

    return args


def collect(args: argparse.Namespace, config: RrbsConfig) -> MetricsReport:
    """Run the methylation pipeline over args.reads.

    Raises:
        BAMValidationError: If the alignment file cannot be used
    """
    with BAMFileProcessor(str(args.reads)) as bam, ReferenceReader(str(args.reference)) as reference:
        bam.validate()
        bam.check_sort_order(args.assume_sorted)
        seqdict = bam.sequence_dictionary

        unknown = config.sequence_names - set(seqdict)
        if unknown:
            logger.warning("Selected sequence(s) not in the alignment header: {}".format(
                ", ".join(sorted(unknown))))

        multilevel = MultiLevelAccumulator.setup(
            config.accumulation_levels, bam.read_groups, LevelAccumulator,
            make_classifier(ClassifierKind.METHYLATION, MethylationContext.from_config(config))
        )

        def _include(record: AlignmentRecord) -> bool:
            return record.sequence is not None and config.includes_sequence(record.sequence)

        logger.info("Call methylation in '{}'".format(args.reads))
        pipeline = MetricsPipeline(multilevel, reference=reference,
                                   reference_path=str(args.reference), nproc=config.nproc,
                                   include=_include, progress=ReferencePositionProgress(seqdict))
        pipeline.run(bam.records())
        subtitle = bam.single_library

    report = finish_rrbs(multilevel.finish_all())
    report.subtitle = subtitle
    return report


def output_results(args: argparse.Namespace, basename: str, report: MetricsReport) -> None:
    output_metrics(basename + RRBS_SUMMARY_SUFFIX, RrbsSummaryMetrics, report.metrics)
    output_metrics(basename + RRBS_DETAIL_SUFFIX, RrbsCpgDetailMetrics, report.details)
    output_histograms(basename + RRBS_HISTOGRAM_SUFFIX, report.histograms)
    if not args.skip_plots and report.has_histogram_data:
        from .output.figure import plot_figures
        plot_figures(basename + PLOTFILE_SUFFIX, report)


def run(args: argparse.Namespace) -> int:
    """Run pyraqc-rrbs for parsed arguments.

    Returns:
        Process exit status
    """
    try:
        config = RrbsConfig.from_args(args)
    except ConfigError as e:
        for problem in e.problems:
            logger.critical("Invalid option: {}".format(problem))
        return 1

    if args.disable_progress:
        ProgressBar.global_switch = False

    if not prepare_outdir(args.outdir, logger):
        return 1
    basename = get_output_basename(args.outdir, args.reads, args.name)
    suffixes = [RRBS_SUMMARY_SUFFIX, RRBS_DETAIL_SUFFIX, RRBS_HISTOGRAM_SUFFIX]
    if not args.skip_plots:
        suffixes.append(PLOTFILE_SUFFIX)
    warn_overwrite(basename, suffixes, logger)

    try:
        report = collect(args, config)
    except (BAMValidationError, OSError) as e:
        logger.critical("Failed to read input: {}".format(e))
        return 1

    output_results(args, basename, report)
    return 0


@entrypoint(logger)
def main() -> None:
    args = _parse_args()
    status = run(args)
    if status:
        sys.exit(status)
