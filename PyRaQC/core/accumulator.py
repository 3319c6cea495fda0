"""Per-grouping-key metric accumulation.

A LevelAccumulator sums the contributions of classified records for one
GroupingKey. All state is kept as plain sums, a numpy bin count and
per-site counters, so the final values do not depend on ingestion order.

Lifecycle:
    OPEN --ingest()*--> OPEN --finish()--> FINISHED

finish() returns an immutable FinishedAccumulator carrying both the raw
counters and every derived statistic.
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Mapping, Optional, Tuple

import numpy as np
import numpy.typing as npt

from PyRaQC.utils.stats_utils import CoverageProfile, mean_of, median_of, safe_ratio
from . import constants
from .exceptions import AccumulatorClosedError, AlreadyFinishedError
from .models import (
    Classification, ExclusionReason, GroupingKey, MethylationGate,
    RegionCategory, StrandAgreement
)

logger = logging.getLogger(__name__)


class AccumulatorState(Enum):
    OPEN = "open"
    FINISHED = "finished"


@dataclass(frozen=True)
class CpgSiteCount:
    """Conversion counts at one CpG site (plus-strand C position)."""
    sequence: str
    position: int
    total: int
    converted: int

    @property
    def unconverted(self) -> int:
        return self.total - self.converted

    @property
    def conversion_rate(self) -> Optional[float]:
        """Unconverted / total calls."""
        return safe_ratio(self.unconverted, self.total)

    @property
    def pct_converted(self) -> Optional[float]:
        return safe_ratio(self.converted, self.total)


@dataclass(frozen=True, eq=False)
class FinishedAccumulator:
    """Frozen counters and derived statistics of one grouping key.

    Ratios are None when their denominator is zero.
    """
    key: GroupingKey
    records_seen: int
    excluded: Mapping[ExclusionReason, int]
    aligned_bases: int
    region_bases: Mapping[RegionCategory, int]
    ignored_bases: int
    ignored_reads: int
    ribosomal_bases: Optional[int]
    strand_reads: Mapping[StrandAgreement, int]
    coverage: npt.NDArray[np.int64] = field(repr=False)
    coverage_profile: CoverageProfile
    region_fractions: Mapping[RegionCategory, Optional[float]]
    pct_ribosomal_bases: Optional[float]
    pct_mrna_bases: Optional[float]
    pct_ignored_bases: Optional[float]
    pct_correct_strand_reads: Optional[float]
    gates: Mapping[MethylationGate, int]
    reads_with_no_cpg: int
    records_skipped: int
    filtered_calls: int
    non_cpg_bases: int
    non_cpg_converted_bases: int
    non_cpg_conversion_rate: Optional[float]
    cpg_sites: Tuple[CpgSiteCount, ...] = field(repr=False)
    cpg_bases_seen: int
    cpg_bases_converted: int
    cpg_conversion_rate: Optional[float]
    mean_cpg_coverage: Optional[float]
    median_cpg_coverage: Optional[float]

    @property
    def reads_aligned(self) -> int:
        """Records that reached the methylation read gate."""
        return sum(self.gates.values())

    @property
    def counted_bases(self) -> int:
        return sum(self.region_bases.values()) + self.ignored_bases

    def excluded_count(self, reason: ExclusionReason) -> int:
        return self.excluded.get(reason, 0)

    def region_count(self, category: RegionCategory) -> int:
        return self.region_bases.get(category, 0)

    def strand_count(self, agreement: StrandAgreement) -> int:
        return self.strand_reads.get(agreement, 0)

    def gate_count(self, gate: MethylationGate) -> int:
        return self.gates.get(gate, 0)


class LevelAccumulator:
    """Mutable aggregate for one grouping key.

    Args:
        key: Grouping key this accumulator tallies
        coverage_bins: Number of normalized transcript positions
        bias_bins: Terminal bins averaged for 5'/3' bias
        track_ribosomal: Whether rRNA membership was evaluated at all. When
            False, ribosomal bases are reported as not computed.
    """

    def __init__(self, key: GroupingKey,
                 coverage_bins: int = constants.NORMALIZED_COVERAGE_BINS,
                 bias_bins: int = constants.BIAS_BINS,
                 track_ribosomal: bool = False) -> None:
        self.key = key
        self.coverage_bins = coverage_bins
        self.bias_bins = bias_bins
        self.track_ribosomal = track_ribosomal
        self.state = AccumulatorState.OPEN

        self.records_seen = 0
        self.excluded: Counter = Counter()
        self.aligned_bases = 0
        self.region_bases: Counter = Counter()
        self.ignored_bases = 0
        self.ignored_reads = 0
        self.ribosomal_bases = 0
        self.strand_reads: Counter = Counter()
        self.coverage = np.zeros(coverage_bins, dtype=np.int64)

        self.gates: Counter = Counter()
        self.reads_with_no_cpg = 0
        self.records_skipped = 0
        self.filtered_calls = 0
        self.non_cpg_bases = 0
        self.non_cpg_converted_bases = 0
        self.cpg_total: Counter = Counter()
        self.cpg_converted: Counter = Counter()

    def __repr__(self) -> str:
        return "<{} {} ({})>".format(self.__class__.__name__, self.key, self.state.value)

    @property
    def is_open(self) -> bool:
        return self.state is AccumulatorState.OPEN

    def _ensure_open(self) -> None:
        if not self.is_open:
            raise AccumulatorClosedError("Accumulator {} is already finished".format(self.key))

    def ingest(self, classification: Classification) -> None:
        """Add one record's contribution.

        Raises:
            AccumulatorClosedError: If the accumulator is finished
        """
        self._ensure_open()
        self.records_seen += 1

        if classification.excluded is not None:
            self.excluded[classification.excluded] += 1
            return

        self.aligned_bases += classification.aligned_bases
        self.region_bases.update(classification.region_bases)
        self.ignored_bases += classification.ignored_bases
        if classification.ignored_read:
            self.ignored_reads += 1
        if classification.ribosomal:
            self.ribosomal_bases += classification.aligned_bases
        if classification.strand is not StrandAgreement.UNDETERMINED:
            self.strand_reads[classification.strand] += 1
        if classification.coverage_bins:
            self.coverage += np.bincount(classification.coverage_bins,
                                         minlength=self.coverage_bins)[:self.coverage_bins]

        if classification.reference_missing:
            self.records_skipped += 1
        if classification.methylation_gate is not None:
            self.gates[classification.methylation_gate] += 1
            if classification.methylation_gate is MethylationGate.PASSED:
                self._ingest_calls(classification)

    def _ingest_calls(self, classification: Classification) -> None:
        has_cpg = False
        for call in classification.methylation_calls:
            if call.filtered:
                self.filtered_calls += 1
                continue
            if call.is_cpg:
                has_cpg = True
                site = (call.sequence, call.position)
                self.cpg_total[site] += 1
                if call.converted:
                    self.cpg_converted[site] += 1
            else:
                self.non_cpg_bases += 1
                if call.converted:
                    self.non_cpg_converted_bases += 1
        if not has_cpg:
            self.reads_with_no_cpg += 1

    def _region_fractions(self) -> Dict[RegionCategory, Optional[float]]:
        return {category: safe_ratio(self.region_bases[category], self.aligned_bases)
                for category in RegionCategory}

    def _cpg_sites(self) -> Tuple[CpgSiteCount, ...]:
        return tuple(
            CpgSiteCount(seq, pos, total, self.cpg_converted[(seq, pos)])
            for (seq, pos), total in sorted(self.cpg_total.items())
        )

    def finish(self) -> FinishedAccumulator:
        """Close the accumulator and derive its statistics.

        Returns:
            FinishedAccumulator

        Raises:
            AlreadyFinishedError: If called more than once
        """
        if not self.is_open:
            raise AlreadyFinishedError("Accumulator {} is already finished".format(self.key))
        self.state = AccumulatorState.FINISHED

        ribosomal_bases = self.ribosomal_bases if self.track_ribosomal else None
        mrna_bases = (self.region_bases[RegionCategory.CODING] +
                      self.region_bases[RegionCategory.UTR])
        correct = self.strand_reads[StrandAgreement.CORRECT]
        incorrect = self.strand_reads[StrandAgreement.INCORRECT]

        cpg_sites = self._cpg_sites()
        cpg_seen = sum(self.cpg_total.values())
        cpg_converted = sum(self.cpg_converted.values())
        site_depths = [site.total for site in cpg_sites]

        coverage = self.coverage.copy()
        coverage.setflags(write=False)

        finished = FinishedAccumulator(
            key=self.key,
            records_seen=self.records_seen,
            excluded=dict(self.excluded),
            aligned_bases=self.aligned_bases,
            region_bases={category: self.region_bases[category] for category in RegionCategory},
            ignored_bases=self.ignored_bases,
            ignored_reads=self.ignored_reads,
            ribosomal_bases=ribosomal_bases,
            strand_reads=dict(self.strand_reads),
            coverage=coverage,
            coverage_profile=CoverageProfile.from_bins(coverage, self.bias_bins),
            region_fractions=self._region_fractions(),
            pct_ribosomal_bases=safe_ratio(ribosomal_bases, self.aligned_bases),
            pct_mrna_bases=safe_ratio(mrna_bases, self.aligned_bases),
            pct_ignored_bases=safe_ratio(self.ignored_bases, self.aligned_bases),
            pct_correct_strand_reads=safe_ratio(correct, correct + incorrect),
            gates=dict(self.gates),
            reads_with_no_cpg=self.reads_with_no_cpg,
            records_skipped=self.records_skipped,
            filtered_calls=self.filtered_calls,
            non_cpg_bases=self.non_cpg_bases,
            non_cpg_converted_bases=self.non_cpg_converted_bases,
            non_cpg_conversion_rate=safe_ratio(self.non_cpg_bases - self.non_cpg_converted_bases,
                                               self.non_cpg_bases),
            cpg_sites=cpg_sites,
            cpg_bases_seen=cpg_seen,
            cpg_bases_converted=cpg_converted,
            cpg_conversion_rate=safe_ratio(cpg_seen - cpg_converted, cpg_seen),
            mean_cpg_coverage=mean_of(site_depths),
            median_cpg_coverage=median_of(site_depths)
        )
        logger.debug("Finished {}: {} records seen.".format(self.key, self.records_seen))
        return finished
