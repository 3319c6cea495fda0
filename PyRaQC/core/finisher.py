"""Mapping of finished accumulators to output records.

No classification or accumulation happens here. Every value is either
copied from a FinishedAccumulator or obtained by division through
safe_ratio, so an empty accumulator yields "not computed" values and
never an error.
"""
import logging
import math
from collections import Counter
from typing import Iterable, Tuple

from PyRaQC.interfaces.output import (
    Histogram, MetricsReport, RnaSeqMetrics, RrbsCpgDetailMetrics, RrbsSummaryMetrics
)
from PyRaQC.utils.stats_utils import safe_ratio
from . import constants
from .accumulator import FinishedAccumulator
from .models import (
    AccumulationLevel, ExclusionReason, GroupingKey, MethylationGate,
    RegionCategory, StrandAgreement
)

logger = logging.getLogger(__name__)

FinishedSet = Iterable[Tuple[GroupingKey, FinishedAccumulator]]

COVERAGE_HISTOGRAM = "coverage_by_position"
CONVERSION_HISTOGRAM = "cpg_count_by_conversion_rate"
CPG_COVERAGE_HISTOGRAM = "cpg_count_by_coverage"


def _identity(key: GroupingKey) -> Tuple[str, str, str]:
    """sample, library and read_group columns of a key."""
    return (
        key.name if key.level is AccumulationLevel.SAMPLE else "",
        key.name if key.level is AccumulationLevel.LIBRARY else "",
        key.name if key.level is AccumulationLevel.READ_GROUP else ""
    )


def _exclusions(acc: FinishedAccumulator) -> Tuple[int, int, int, int]:
    return (
        acc.excluded_count(ExclusionReason.UNMAPPED),
        acc.excluded_count(ExclusionReason.DUPLICATE),
        acc.excluded_count(ExclusionReason.SECONDARY),
        acc.excluded_count(ExclusionReason.QC_FAIL)
    )


def rnaseq_metrics(key: GroupingKey, acc: FinishedAccumulator) -> RnaSeqMetrics:
    profile = acc.coverage_profile
    return RnaSeqMetrics(
        *_identity(key),
        acc.records_seen,
        *_exclusions(acc),
        aligned_bases=acc.aligned_bases,
        ribosomal_bases=acc.ribosomal_bases,
        coding_bases=acc.region_count(RegionCategory.CODING),
        utr_bases=acc.region_count(RegionCategory.UTR),
        intronic_bases=acc.region_count(RegionCategory.INTRONIC),
        intergenic_bases=acc.region_count(RegionCategory.INTERGENIC),
        ignored_bases=acc.ignored_bases,
        ignored_reads=acc.ignored_reads,
        correct_strand_reads=acc.strand_count(StrandAgreement.CORRECT),
        incorrect_strand_reads=acc.strand_count(StrandAgreement.INCORRECT),
        ambiguous_strand_reads=acc.strand_count(StrandAgreement.AMBIGUOUS),
        pct_ribosomal_bases=acc.pct_ribosomal_bases,
        pct_coding_bases=acc.region_fractions[RegionCategory.CODING],
        pct_utr_bases=acc.region_fractions[RegionCategory.UTR],
        pct_intronic_bases=acc.region_fractions[RegionCategory.INTRONIC],
        pct_intergenic_bases=acc.region_fractions[RegionCategory.INTERGENIC],
        pct_mrna_bases=acc.pct_mrna_bases,
        pct_ignored_bases=acc.pct_ignored_bases,
        pct_correct_strand_reads=acc.pct_correct_strand_reads,
        median_coverage=profile.median_coverage,
        cv_coverage=profile.cv_coverage,
        five_prime_bias=profile.five_prime_bias,
        three_prime_bias=profile.three_prime_bias,
        five_to_three_prime_bias=profile.five_to_three_prime_bias
    )


def coverage_histogram(key: GroupingKey, acc: FinishedAccumulator) -> Histogram:
    return Histogram(COVERAGE_HISTOGRAM, str(key), "normalized_position", "coverage",
                     {i: int(v) for i, v in enumerate(acc.coverage)})


def finish_rnaseq(finished: FinishedSet) -> MetricsReport:
    """Build RNA-seq metric rows and coverage histograms.

    Args:
        finished: (key, FinishedAccumulator) pairs as from finish_all()

    Returns:
        MetricsReport in input order
    """
    report = MetricsReport()
    for key, acc in finished:
        report.metrics.append(rnaseq_metrics(key, acc))
        report.histograms.append(coverage_histogram(key, acc))
    return report


def rrbs_summary(key: GroupingKey, acc: FinishedAccumulator) -> RrbsSummaryMetrics:
    return RrbsSummaryMetrics(
        *_identity(key),
        acc.records_seen,
        *_exclusions(acc),
        reads_aligned=acc.reads_aligned,
        reads_ignored_short=acc.gate_count(MethylationGate.TOO_SHORT),
        reads_ignored_mismatches=acc.gate_count(MethylationGate.TOO_MANY_MISMATCHES),
        reads_missing_reference=acc.gate_count(MethylationGate.MISSING_REFERENCE),
        reads_with_no_cpg=acc.reads_with_no_cpg,
        records_skipped=acc.records_skipped,
        non_cpg_bases=acc.non_cpg_bases,
        non_cpg_converted_bases=acc.non_cpg_converted_bases,
        non_cpg_conversion_rate=acc.non_cpg_conversion_rate,
        pct_non_cpg_bases_converted=safe_ratio(acc.non_cpg_converted_bases, acc.non_cpg_bases),
        cpg_bases_seen=acc.cpg_bases_seen,
        cpg_bases_converted=acc.cpg_bases_converted,
        cpg_conversion_rate=acc.cpg_conversion_rate,
        pct_cpg_bases_converted=safe_ratio(acc.cpg_bases_converted, acc.cpg_bases_seen),
        filtered_calls=acc.filtered_calls,
        mean_cpg_coverage=acc.mean_cpg_coverage,
        median_cpg_coverage=acc.median_cpg_coverage
    )


def rrbs_details(key: GroupingKey, acc: FinishedAccumulator):
    identity = _identity(key)
    for site in acc.cpg_sites:
        yield RrbsCpgDetailMetrics(
            *identity,
            sequence=site.sequence,
            position=site.position,
            total_sites=site.total,
            converted_sites=site.converted,
            unconverted_sites=site.unconverted,
            conversion_rate=site.conversion_rate,
            pct_converted=site.pct_converted
        )


def rrbs_histograms(key: GroupingKey, acc: FinishedAccumulator,
                    resolution: int = constants.CONVERSION_RATE_BINS) -> Tuple[Histogram, Histogram]:
    """CpG-count-by-conversion-rate and CpG-count-by-coverage histograms.

    Conversion rates are rounded half up to 1 / resolution.
    """
    by_rate: Counter = Counter()
    by_depth: Counter = Counter()
    for site in acc.cpg_sites:
        rate = site.conversion_rate
        if rate is not None:
            by_rate[math.floor(rate * resolution + 0.5) / resolution] += 1
        by_depth[site.total] += 1
    return (
        Histogram(CONVERSION_HISTOGRAM, str(key), "conversion_rate", "cpg_sites",
                  dict(sorted(by_rate.items()))),
        Histogram(CPG_COVERAGE_HISTOGRAM, str(key), "coverage", "cpg_sites",
                  dict(sorted(by_depth.items())))
    )


def finish_rrbs(finished: FinishedSet) -> MetricsReport:
    """Build RRBS summary rows, per-CpG detail rows and histograms."""
    report = MetricsReport()
    for key, acc in finished:
        report.metrics.append(rrbs_summary(key, acc))
        report.details.extend(rrbs_details(key, acc))
        report.histograms.extend(rrbs_histograms(key, acc))
    return report
