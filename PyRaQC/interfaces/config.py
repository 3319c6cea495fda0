"""Configuration models and type definitions for PyRaQC.

Defines the option enums and the RnaSeqConfig / RrbsConfig dataclasses
consumed by the engine. Both configurations validate all their ranges at
once and report every violation in a single ConfigError.
"""
from argparse import Namespace
from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, List

import sys

if sys.version_info >= (3, 11):
    from typing import Self
else:
    from typing_extensions import Self

from PyRaQC.core import constants
from PyRaQC.core.exceptions import ConfigError
from PyRaQC.core.models import AccumulationLevel


class StrandSpecificity(Enum):
    """Library strand protocol."""
    NONE = "NONE"
    FIRST_READ_TRANSCRIPTION_STRAND = "FIRST_READ_TRANSCRIPTION_STRAND"
    SECOND_READ_TRANSCRIPTION_STRAND = "SECOND_READ_TRANSCRIPTION_STRAND"


class OverlapTieBreak(Enum):
    """How a base covered by transcripts on both strands is resolved.

    PRIORITY: highest category over all overlapping transcripts.
    EFFECTIVE_STRAND: with a strand-specific library, only transcripts on the
    read's effective strand are considered when both strands are present.
    """
    PRIORITY = "PRIORITY"
    EFFECTIVE_STRAND = "EFFECTIVE_STRAND"


def _default_levels() -> FrozenSet[AccumulationLevel]:
    return frozenset({AccumulationLevel.ALL_READS})


def _check_fraction(problems: List[str], name: str, value: float) -> None:
    if not 0.0 <= value <= 1.0:
        problems.append("{} must be in the range of 0-1 (got {})".format(name, value))


@dataclass
class RnaSeqConfig:
    """Parameters of RNA-seq metric collection."""
    minimum_transcript_length: int = constants.MINIMUM_TRANSCRIPT_LENGTH
    strand_specificity: StrandSpecificity = StrandSpecificity.NONE
    rrna_fragment_percentage: float = constants.RRNA_FRAGMENT_PERCENTAGE
    ignored_sequences: FrozenSet[str] = frozenset()
    accumulation_levels: FrozenSet[AccumulationLevel] = field(default_factory=_default_levels)
    tie_break: OverlapTieBreak = OverlapTieBreak.PRIORITY
    coverage_bins: int = constants.NORMALIZED_COVERAGE_BINS
    bias_bins: int = constants.BIAS_BINS
    nproc: int = 1

    def validate(self) -> Self:
        """Check ranges of every option.

        Returns:
            self, for chaining

        Raises:
            ConfigError: Listing all violated constraints
        """
        problems: List[str] = []
        if self.minimum_transcript_length < 0:
            problems.append("minimum_transcript_length must be >= 0")
        _check_fraction(problems, "rrna_fragment_percentage", self.rrna_fragment_percentage)
        if self.coverage_bins <= 0:
            problems.append("coverage_bins must be > 0")
        elif not 0 < self.bias_bins <= self.coverage_bins // 2:
            problems.append("bias_bins must be in the range of 1-{}".format(self.coverage_bins // 2))
        if self.nproc <= 0:
            problems.append("nproc must be > 0")
        if problems:
            raise ConfigError(problems)
        return self

    @classmethod
    def from_args(cls, args: Namespace) -> Self:
        """Create configuration from parsed command-line arguments."""
        return cls(
            minimum_transcript_length=args.minimum_length,
            strand_specificity=StrandSpecificity[args.strand_specificity],
            rrna_fragment_percentage=args.rrna_fragment_percentage,
            ignored_sequences=frozenset(args.ignore_sequence or ()),
            accumulation_levels=frozenset(AccumulationLevel[lv] for lv in args.level),
            tie_break=OverlapTieBreak[args.tie_break],
            coverage_bins=args.coverage_bins,
            bias_bins=args.bias_bins,
            nproc=args.process
        ).validate()


@dataclass
class RrbsConfig:
    """Parameters of RRBS methylation metric collection."""
    minimum_read_length: int = constants.MINIMUM_READ_LENGTH
    c_quality_threshold: int = constants.C_QUALITY_THRESHOLD
    next_base_quality_threshold: int = constants.NEXT_BASE_QUALITY_THRESHOLD
    max_mismatch_rate: float = constants.MAX_MISMATCH_RATE
    sequence_names: FrozenSet[str] = frozenset()
    accumulation_levels: FrozenSet[AccumulationLevel] = field(default_factory=_default_levels)
    nproc: int = 1

    def validate(self) -> Self:
        """Check ranges of every option.

        Raises:
            ConfigError: Listing all violated constraints
        """
        problems: List[str] = []
        _check_fraction(problems, "max_mismatch_rate", self.max_mismatch_rate)
        if self.c_quality_threshold < 0:
            problems.append("c_quality_threshold must be >= 0")
        if self.next_base_quality_threshold < 0:
            problems.append("next_base_quality_threshold must be >= 0")
        if self.minimum_read_length <= 0:
            problems.append("minimum_read_length must be > 0")
        if self.nproc <= 0:
            problems.append("nproc must be > 0")
        if problems:
            raise ConfigError(problems)
        return self

    def includes_sequence(self, sequence: str) -> bool:
        """True if reads on sequence should be considered at all."""
        return not self.sequence_names or sequence in self.sequence_names

    @classmethod
    def from_args(cls, args: Namespace) -> Self:
        """Create configuration from parsed command-line arguments."""
        return cls(
            minimum_read_length=args.minimum_read_length,
            c_quality_threshold=args.c_quality_threshold,
            next_base_quality_threshold=args.next_base_quality_threshold,
            max_mismatch_rate=args.max_mismatch_rate,
            sequence_names=frozenset(args.sequence_names or ()),
            accumulation_levels=frozenset(AccumulationLevel[lv] for lv in args.level),
            nproc=args.process
        ).validate()
