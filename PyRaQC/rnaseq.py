"""pyraqc-rnaseq: RNA-seq alignment metrics.

Classifies every aligned base of a SAM/BAM file against a refFlat gene
annotation (coding, UTR, intronic, intergenic), optionally flags rRNA
fragments, checks strand agreement and accumulates coverage along
transcripts at the requested grouping levels.
"""
from __future__ import annotations

import argparse
import logging
import sys
from functools import partial
from typing import List, Optional

from . import entrypoint, logging_version
from .core.accumulator import LevelAccumulator
from .core.annotation import build_transcript_index
from .core.classifier import ClassifierKind, RnaSeqContext, make_classifier
from .core.exceptions import ConfigError, SetupError
from .core.finisher import finish_rnaseq
from .core.multilevel import MultiLevelAccumulator
from .handler.pipeline import MetricsPipeline
from .interfaces.config import RnaSeqConfig
from .interfaces.output import MetricsReport, RnaSeqMetrics
from .output.table import (
    RNA_COVERAGE_SUFFIX, RNA_METRICS_SUFFIX, output_histograms, output_metrics
)
from .reader.annotation import load_ribosomal_index, read_refflat
from .reader.bam import BAMFileProcessor, BAMValidationError
from .utils.logfmt import set_rootlogger
from .utils.output import get_output_basename, prepare_outdir, warn_overwrite
from .utils.parsearg import get_rnaseq_parser
from .utils.progress import ProgressBar, ReferencePositionProgress

logger = logging.getLogger(__name__)

PLOTFILE_SUFFIX = ".rna_metrics.pdf"


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = get_rnaseq_parser()
    args = parser.parse_args(argv)

    set_rootlogger(args.color, args.log_level)
    logging_version(logger)

    return args


def collect(args: argparse.Namespace, config: RnaSeqConfig) -> MetricsReport:
    """Run the RNA-seq pipeline over args.reads.

    Raises:
        SetupError: If annotations cannot be indexed
        BAMValidationError: If the alignment file cannot be used
    """
    with BAMFileProcessor(str(args.reads)) as bam:
        bam.validate()
        bam.check_sort_order(args.assume_sorted)
        seqdict = bam.sequence_dictionary

        unknown = config.ignored_sequences - set(seqdict)
        if unknown:
            logger.warning("Ignored sequence(s) not in the alignment header: {}".format(
                ", ".join(sorted(unknown))))

        genes = build_transcript_index(read_refflat(args.ref_flat, seqdict), seqdict)
        ribosomal = load_ribosomal_index(args.ribosomal_intervals, seqdict)
        context = RnaSeqContext.from_config(config, genes, ribosomal)

        factory = partial(LevelAccumulator,
                          coverage_bins=config.coverage_bins,
                          bias_bins=config.bias_bins,
                          track_ribosomal=context.ribosomal.enabled)
        multilevel = MultiLevelAccumulator.setup(
            config.accumulation_levels, bam.read_groups, factory,
            make_classifier(ClassifierKind.RNASEQ, context)
        )

        logger.info("Classify reads in '{}'".format(args.reads))
        pipeline = MetricsPipeline(multilevel, nproc=config.nproc,
                                   progress=ReferencePositionProgress(seqdict))
        pipeline.run(bam.records())
        subtitle = bam.single_library

    report = finish_rnaseq(multilevel.finish_all())
    report.subtitle = subtitle
    return report


def output_results(args: argparse.Namespace, basename: str, report: MetricsReport) -> None:
    output_metrics(basename + RNA_METRICS_SUFFIX, RnaSeqMetrics, report.metrics)
    output_histograms(basename + RNA_COVERAGE_SUFFIX, report.histograms)
    if not args.skip_plots and report.has_histogram_data:
        from .output.figure import plot_figures
        plot_figures(basename + PLOTFILE_SUFFIX, report)


def run(args: argparse.Namespace) -> int:
    """Run pyraqc-rnaseq for parsed arguments.

    Returns:
        Process exit status
    """
    try:
        config = RnaSeqConfig.from_args(args)
    except ConfigError as e:
        for problem in e.problems:
            logger.critical("Invalid option: {}".format(problem))
        return 1

    if args.disable_progress:
        ProgressBar.global_switch = False

    if not prepare_outdir(args.outdir, logger):
        return 1
    basename = get_output_basename(args.outdir, args.reads, args.name)
    suffixes = [RNA_METRICS_SUFFIX, RNA_COVERAGE_SUFFIX]
    if not args.skip_plots:
        suffixes.append(PLOTFILE_SUFFIX)
    warn_overwrite(basename, suffixes, logger)

    try:
        report = collect(args, config)
    except SetupError as e:
        logger.critical("Invalid annotation: {}".format(e))
        return 1
    except (BAMValidationError, OSError) as e:
        logger.critical("Failed to read '{}': {}".format(args.reads, e))
        return 1

    output_results(args, basename, report)
    return 0


@entrypoint(logger)
def main() -> None:
    args = _parse_args()
    status = run(args)
    if status:
        sys.exit(status)
