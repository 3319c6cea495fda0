"""Record classification strategies.

Each strategy is a pure function ``(record, window, context) ->
Classification`` over read-only inputs, so classification can run in any
number of worker processes. The strategy is chosen by ClassifierKind
through :func:`make_classifier`; contexts carry the indices and thresholds
a strategy needs.

Strategies:
- TRANSCRIPT: per-base region categories, strand agreement, coverage bins
- RIBOSOMAL: fragment-level rRNA membership
- METHYLATION: bisulfite calls at C/G bases behind a read-level gate
- RNASEQ: TRANSCRIPT and RIBOSOMAL combined into one classification
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Any, Callable, Dict, FrozenSet, Iterator, List, Optional, Tuple

from PyRaQC.interfaces.config import (
    OverlapTieBreak, RnaSeqConfig, RrbsConfig, StrandSpecificity
)
from . import constants
from .annotation import TranscriptModel
from .interval import IntervalIndex
from .models import (
    AlignmentRecord, Classification, MethylationCall, MethylationGate,
    ReferenceWindow, RegionCategory, StrandAgreement
)

logger = logging.getLogger(__name__)

Classifier = Callable[[AlignmentRecord, Optional[ReferenceWindow]], Classification]


class ClassifierKind(Enum):
    TRANSCRIPT = "transcript"
    RIBOSOMAL = "ribosomal"
    METHYLATION = "methylation"
    RNASEQ = "rnaseq"


@dataclass(frozen=True)
class TranscriptContext:
    genes: IntervalIndex
    minimum_transcript_length: int = constants.MINIMUM_TRANSCRIPT_LENGTH
    strand_specificity: StrandSpecificity = StrandSpecificity.NONE
    ignored_sequences: FrozenSet[str] = frozenset()
    tie_break: OverlapTieBreak = OverlapTieBreak.PRIORITY
    coverage_bins: int = constants.NORMALIZED_COVERAGE_BINS


@dataclass(frozen=True)
class RibosomalContext:
    """rRNA lookup. An absent or empty index disables rRNA accounting."""
    ribosomal: Optional[IntervalIndex] = None
    rrna_fragment_percentage: float = constants.RRNA_FRAGMENT_PERCENTAGE

    @property
    def enabled(self) -> bool:
        return self.ribosomal is not None and len(self.ribosomal) > 0


@dataclass(frozen=True)
class RnaSeqContext:
    transcript: TranscriptContext
    ribosomal: RibosomalContext

    @classmethod
    def from_config(cls, config: RnaSeqConfig, genes: IntervalIndex,
                    ribosomal: Optional[IntervalIndex] = None) -> "RnaSeqContext":
        return cls(
            TranscriptContext(
                genes=genes,
                minimum_transcript_length=config.minimum_transcript_length,
                strand_specificity=config.strand_specificity,
                ignored_sequences=frozenset(config.ignored_sequences),
                tie_break=config.tie_break,
                coverage_bins=config.coverage_bins
            ),
            RibosomalContext(ribosomal, config.rrna_fragment_percentage)
        )


@dataclass(frozen=True)
class MethylationContext:
    minimum_read_length: int = constants.MINIMUM_READ_LENGTH
    c_quality_threshold: int = constants.C_QUALITY_THRESHOLD
    next_base_quality_threshold: int = constants.NEXT_BASE_QUALITY_THRESHOLD
    max_mismatch_rate: float = constants.MAX_MISMATCH_RATE

    @classmethod
    def from_config(cls, config: RrbsConfig) -> "MethylationContext":
        return cls(
            minimum_read_length=config.minimum_read_length,
            c_quality_threshold=config.c_quality_threshold,
            next_base_quality_threshold=config.next_base_quality_threshold,
            max_mismatch_rate=config.max_mismatch_rate
        )


# Transcript strategy

def effective_negative_strand(record: AlignmentRecord, policy: StrandSpecificity) -> Optional[bool]:
    """Transcription strand implied by a read under the library protocol.

    Returns:
        True for the negative strand, False for the positive strand, None
        when the library is not strand specific
    """
    if policy is StrandSpecificity.NONE:
        return None
    if policy is StrandSpecificity.FIRST_READ_TRANSCRIPTION_STRAND:
        flip = not record.is_read1_or_unpaired
    else:
        flip = record.is_read1_or_unpaired
    return record.is_reverse != flip


def strand_agreement(transcripts: List[TranscriptModel], negative: Optional[bool]) -> StrandAgreement:
    if negative is None or not transcripts:
        return StrandAgreement.UNDETERMINED
    agree = sum(1 for t in transcripts if t.is_negative_strand == negative)
    if agree == len(transcripts):
        return StrandAgreement.CORRECT
    if agree == 0:
        return StrandAgreement.INCORRECT
    return StrandAgreement.AMBIGUOUS


def classify_transcript(record: AlignmentRecord,
                        window: Optional[ReferenceWindow],
                        context: TranscriptContext) -> Classification:
    """Assign every aligned base a region category.

    Bases on ignored sequences are only counted as ignored. Otherwise each
    base gets exactly one RegionCategory, the highest among the transcripts
    covering it.
    """
    result = Classification(aligned_bases=record.aligned_bases)
    if record.sequence in context.ignored_sequences:
        result.ignored_bases = result.aligned_bases
        result.ignored_read = True
        return result

    transcripts = sorted(
        (iv.data for iv in context.genes.overlapping(record.sequence, record.start, record.end)),
        key=lambda t: t.name
    )
    negative = effective_negative_strand(record, context.strand_specificity)
    result.strand = strand_agreement(transcripts, negative)
    prefer_strand = (negative is not None and
                     context.tie_break is OverlapTieBreak.EFFECTIVE_STRAND)

    min_length = context.minimum_transcript_length
    nbins = context.coverage_bins
    regions: Counter = Counter()
    bins: List[int] = []
    for block in record.blocks:
        for pos in range(block.ref_start, block.ref_end + 1):
            hits = [t for t in transcripts if t.start <= pos <= t.end]
            if prefer_strand:
                same = [t for t in hits if t.is_negative_strand == negative]
                if same:
                    hits = same

            category = RegionCategory.INTERGENIC
            for t in hits:
                qualifying = t.length >= min_length
                category = max(category, t.category_at(pos, qualifying))
                if qualifying:
                    offset = t.transcript_offset(pos)
                    if offset is not None:
                        bins.append(offset * nbins // t.length)
            regions[category] += 1

    result.region_bases = dict(regions)
    result.coverage_bins = tuple(bins)
    return result


# Ribosomal strategy

def fragment_span(record: AlignmentRecord) -> Tuple[int, int]:
    """Reference span of the read, or of the read pair when the mate is
    mapped to the same sequence."""
    if (record.is_paired and not record.mate_unmapped and record.mate_start is not None
            and record.mate_sequence == record.sequence and record.template_length != 0):
        start = min(record.start, record.mate_start)
        return start, start + abs(record.template_length) - 1
    return record.start, record.end


def is_ribosomal(record: AlignmentRecord, context: RibosomalContext) -> Optional[bool]:
    """Whether the fragment overlaps rRNA by at least the configured fraction.

    Returns None if no ribosomal intervals were supplied.
    """
    if not context.enabled:
        return None
    assert context.ribosomal is not None
    start, end = fragment_span(record)
    covered = context.ribosomal.overlap_length(record.sequence, start, end)
    return covered / (end - start + 1) >= context.rrna_fragment_percentage


def classify_ribosomal(record: AlignmentRecord,
                       window: Optional[ReferenceWindow],
                       context: RibosomalContext) -> Classification:
    return Classification(aligned_bases=record.aligned_bases,
                          ribosomal=is_ribosomal(record, context))


def classify_rnaseq(record: AlignmentRecord,
                    window: Optional[ReferenceWindow],
                    context: RnaSeqContext) -> Classification:
    result = classify_transcript(record, window, context.transcript)
    if not result.ignored_read:
        result.ribosomal = is_ribosomal(record, context.ribosomal)
    return result


# Methylation strategy

def _is_bisulfite_match(read_base: str, ref_base: str, reverse: bool) -> bool:
    if read_base == ref_base:
        return True
    if reverse:
        return ref_base == "G" and read_base == "A"
    return ref_base == "C" and read_base == "T"


def count_mismatches(record: AlignmentRecord, window: ReferenceWindow) -> int:
    """Mismatches against the reference that bisulfite conversion cannot explain."""
    mismatches = 0
    bases = record.bases.upper()
    for block in record.blocks:
        for i in range(block.length):
            if not _is_bisulfite_match(bases[block.read_start + i],
                                       window.base_at(block.ref_start + i),
                                       record.is_reverse):
                mismatches += 1
    return mismatches


def _methylation_calls(record: AlignmentRecord,
                       window: ReferenceWindow,
                       context: MethylationContext) -> Iterator[MethylationCall]:
    bases = record.bases.upper()
    quals = record.qualities
    reverse = record.is_reverse
    target, converted_base, partner = ("G", "A", "C") if reverse else ("C", "T", "G")

    for block in record.blocks:
        for i in range(block.length):
            pos = block.ref_start + i
            if window.base_at(pos) != target:
                continue
            # the base following the C in sequencing direction must be aligned in this block
            if reverse:
                if i == 0:
                    continue
                next_pos, next_i = pos - 1, block.read_start + i - 1
            else:
                if i + 1 >= block.length:
                    continue
                next_pos, next_i = pos + 1, block.read_start + i + 1

            read_i = block.read_start + i
            read_base = bases[read_i]
            if read_base != target and read_base != converted_base:
                continue

            is_cpg = window.base_at(next_pos) == partner
            site = next_pos if (is_cpg and reverse) else pos
            filtered = (quals is None or
                        quals[read_i] < context.c_quality_threshold or
                        quals[next_i] < context.next_base_quality_threshold)
            yield MethylationCall(record.sequence or "", site, is_cpg,
                                  read_base == converted_base, filtered)


def classify_methylation(record: AlignmentRecord,
                         window: Optional[ReferenceWindow],
                         context: MethylationContext) -> Classification:
    """Emit per-base methylation calls for reads passing the read gate.

    Reads shorter than the minimum length or with too many non-bisulfite
    mismatches yield no calls at all.
    """
    result = Classification(aligned_bases=record.aligned_bases)
    if window is None:
        result.reference_missing = True
        result.methylation_gate = MethylationGate.MISSING_REFERENCE
        return result

    if record.read_length < max(context.minimum_read_length, 1):
        result.methylation_gate = MethylationGate.TOO_SHORT
        return result

    if count_mismatches(record, window) / record.read_length > context.max_mismatch_rate:
        result.methylation_gate = MethylationGate.TOO_MANY_MISMATCHES
        return result

    result.methylation_gate = MethylationGate.PASSED
    result.methylation_calls = tuple(_methylation_calls(record, window, context))
    return result


_STRATEGIES: Dict[ClassifierKind, Callable[..., Classification]] = {
    ClassifierKind.TRANSCRIPT: classify_transcript,
    ClassifierKind.RIBOSOMAL: classify_ribosomal,
    ClassifierKind.METHYLATION: classify_methylation,
    ClassifierKind.RNASEQ: classify_rnaseq,
}


def make_classifier(kind: ClassifierKind, context: Any) -> Classifier:
    """Bind a strategy to its context.

    The returned callable is picklable as long as the context is.
    """
    return partial(_STRATEGIES[kind], context=context)


def requires_reference(kind: ClassifierKind) -> bool:
    return kind is ClassifierKind.METHYLATION
