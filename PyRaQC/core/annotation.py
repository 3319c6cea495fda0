"""Transcript models and the gene overlap index built from them.

A TranscriptModel answers two per-base questions used by the transcript
classifier: which region category a reference base belongs to, and where
the base sits along the mature transcript (5' to 3').
"""
from __future__ import annotations

import logging
from bisect import bisect_right
from dataclasses import dataclass, field
from typing import Iterable, Optional, Tuple

from .exceptions import MalformedIntervalError
from .interval import IntervalIndex, SequenceDictionary
from .models import GenomicInterval, RegionCategory

logger = logging.getLogger(__name__)

TRANSCRIPT_KIND = "transcript"


@dataclass(frozen=True)
class TranscriptModel:
    """Exon structure of a single transcript.

    All coordinates are 1-based and closed. A transcript without a coding
    sequence has cds_start > cds_end.

    Attributes:
        name: Transcript identifier
        gene: Gene name
        sequence: Reference sequence name
        strand: '+' or '-'
        start: First base of the transcript
        end: Last base of the transcript
        cds_start: First coding base
        cds_end: Last coding base
        exons: (start, end) pairs ordered by position
    """
    name: str
    gene: str
    sequence: str
    strand: str
    start: int
    end: int
    cds_start: int
    cds_end: int
    exons: Tuple[Tuple[int, int], ...]
    _exon_starts: Tuple[int, ...] = field(init=False, repr=False, compare=False)
    _cumulative: Tuple[int, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise MalformedIntervalError(
                "Transcript '{}' has start {} > end {}".format(self.name, self.start, self.end))
        previous_end = self.start - 1
        cumulative = [0]
        for exon_start, exon_end in self.exons:
            if exon_start > exon_end or exon_start <= previous_end or exon_end > self.end:
                raise MalformedIntervalError(
                    "Transcript '{}' has an invalid exon {}-{}".format(self.name, exon_start, exon_end))
            previous_end = exon_end
            cumulative.append(cumulative[-1] + exon_end - exon_start + 1)
        object.__setattr__(self, "_exon_starts", tuple(s for s, _ in self.exons))
        object.__setattr__(self, "_cumulative", tuple(cumulative))

    @property
    def length(self) -> int:
        """Length of the mature transcript (sum of exon lengths)."""
        return self._cumulative[-1]

    @property
    def is_negative_strand(self) -> bool:
        return self.strand == "-"

    @property
    def has_cds(self) -> bool:
        return self.cds_start <= self.cds_end

    def exon_index(self, position: int) -> Optional[int]:
        """Index of the exon containing position, None if intronic or outside."""
        i = bisect_right(self._exon_starts, position) - 1
        if i >= 0 and position <= self.exons[i][1]:
            return i
        return None

    def transcript_offset(self, position: int) -> Optional[int]:
        """0-based offset of a genomic base along the transcript, 5' first."""
        i = self.exon_index(position)
        if i is None:
            return None
        offset = self._cumulative[i] + position - self.exons[i][0]
        if self.is_negative_strand:
            offset = self.length - 1 - offset
        return offset

    def category_at(self, position: int, use_exons: bool = True) -> RegionCategory:
        """Region category of a base relative to this transcript alone.

        Args:
            position: 1-based reference position
            use_exons: When False the transcript only contributes INTRONIC,
                as for transcripts below the minimum length

        Returns:
            RegionCategory of the base
        """
        if not self.start <= position <= self.end:
            return RegionCategory.INTERGENIC
        if use_exons and self.exon_index(position) is not None:
            if self.cds_start <= position <= self.cds_end:
                return RegionCategory.CODING
            return RegionCategory.UTR
        return RegionCategory.INTRONIC

    def to_interval(self) -> GenomicInterval:
        return GenomicInterval(self.sequence, self.start, self.end, self.strand,
                               TRANSCRIPT_KIND, self.name, data=self)


def build_transcript_index(transcripts: Iterable[TranscriptModel],
                           sequence_dictionary: Optional[SequenceDictionary] = None) -> IntervalIndex:
    """Index transcripts by their genomic bounds.

    Each indexed interval carries its TranscriptModel as payload.
    """
    index = IntervalIndex.load((t.to_interval() for t in transcripts), sequence_dictionary)
    logger.info("Loaded {} transcripts.".format(len(index)))
    return index
