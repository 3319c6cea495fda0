"""Data models shared by the classification and accumulation engine.

Coordinates are 1-based and closed on both ends everywhere in the core.
Readers convert from the 0-based half-open conventions of pysam and
refFlat before building these values.

Key model categories:
- Annotation values: GenomicInterval
- Alignment values: AlignmentBlock, AlignmentRecord, ReferenceWindow
- Classification output: Classification, MethylationCall
- Grouping: AccumulationLevel, GroupingKey, ReadGroup
"""
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Dict, Optional, Sequence, Tuple


class RegionCategory(IntEnum):
    """Functional category of a reference base.

    Integer values encode priority: when a base is covered by several
    transcripts the highest value wins.
    """
    INTERGENIC = 0
    INTRONIC = 1
    UTR = 2
    CODING = 3


class StrandAgreement(Enum):
    """Agreement between a read's effective strand and overlapping transcripts."""
    UNDETERMINED = "undetermined"
    CORRECT = "correct"
    INCORRECT = "incorrect"
    AMBIGUOUS = "ambiguous"


class ExclusionReason(Enum):
    """Why a record was dropped before classification."""
    UNMAPPED = "unmapped"
    DUPLICATE = "duplicate"
    SECONDARY = "secondary"
    QC_FAIL = "qc_fail"


class MethylationGate(Enum):
    """Outcome of the read-level gate applied before methylation calling."""
    PASSED = "passed"
    TOO_SHORT = "too_short"
    TOO_MANY_MISMATCHES = "too_many_mismatches"
    MISSING_REFERENCE = "missing_reference"


class AccumulationLevel(Enum):
    """Grouping granularity at which metrics are tallied independently."""
    ALL_READS = "ALL_READS"
    SAMPLE = "SAMPLE"
    LIBRARY = "LIBRARY"
    READ_GROUP = "READ_GROUP"

    @property
    def order(self) -> int:
        return _LEVEL_ORDER[self]


_LEVEL_ORDER = {level: i for i, level in enumerate(AccumulationLevel)}


@dataclass(frozen=True)
class GenomicInterval:
    """Annotated genomic interval.

    Attributes:
        sequence: Reference sequence name
        start: 1-based first base
        end: 1-based last base (inclusive)
        strand: '+' or '-'
        kind: Feature kind, e.g. 'transcript' or 'rRNA'
        name: Feature identifier
        data: Arbitrary payload, ignored for equality and hashing
    """
    sequence: str
    start: int
    end: int
    strand: str = "+"
    kind: str = ""
    name: str = ""
    data: Any = field(default=None, compare=False, hash=False, repr=False)

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    @property
    def is_negative_strand(self) -> bool:
        return self.strand == "-"


@dataclass(frozen=True)
class AlignmentBlock:
    """Gapless aligned segment of a read.

    Attributes:
        read_start: 0-based index of the first block base in the read
        ref_start: 1-based reference position of the first block base
        length: Number of aligned bases
    """
    read_start: int
    ref_start: int
    length: int

    @property
    def ref_end(self) -> int:
        return self.ref_start + self.length - 1


@dataclass
class AlignmentRecord:
    """One alignment record as delivered by the record-iteration layer.

    Records are borrowed for the duration of a single routing call and are
    never retained by accumulators.
    """
    name: str
    sequence: Optional[str]
    start: int
    end: int
    is_reverse: bool = False
    mapping_quality: int = 255
    blocks: Tuple[AlignmentBlock, ...] = ()
    bases: str = ""
    qualities: Optional[Sequence[int]] = None
    read_group: Optional[str] = None
    is_paired: bool = False
    is_read2: bool = False
    mate_unmapped: bool = True
    mate_sequence: Optional[str] = None
    mate_start: Optional[int] = None
    template_length: int = 0
    is_unmapped: bool = False
    is_duplicate: bool = False
    is_secondary: bool = False
    is_supplementary: bool = False
    is_qc_fail: bool = False

    @property
    def read_length(self) -> int:
        return len(self.bases)

    @property
    def aligned_bases(self) -> int:
        return sum(block.length for block in self.blocks)

    @property
    def is_read1_or_unpaired(self) -> bool:
        return not self.is_paired or not self.is_read2


@dataclass(frozen=True)
class ReferenceWindow:
    """Reference bases covering a record.

    Attributes:
        sequence: Reference sequence name
        start: 1-based position of bases[0]
        bases: Upper-case reference bases
    """
    sequence: str
    start: int
    bases: str

    def base_at(self, position: int) -> str:
        """Return the reference base at a 1-based position, 'N' outside the window."""
        offset = position - self.start
        if 0 <= offset < len(self.bases):
            return self.bases[offset]
        return "N"


@dataclass(frozen=True)
class MethylationCall:
    """Bisulfite call at one cytosine.

    Attributes:
        sequence: Reference sequence name
        position: For CpG calls the plus-strand C of the dyad, otherwise the
            called base itself
        is_cpg: Whether the cytosine is followed by a guanine in the reference
        converted: Read shows the bisulfite-converted base
        filtered: Base qualities failed the thresholds; never counted
    """
    sequence: str
    position: int
    is_cpg: bool
    converted: bool
    filtered: bool = False


@dataclass
class Classification:
    """Result of classifying a single record.

    A classification is built by exactly one classifier call and treated as
    immutable afterwards.
    """
    excluded: Optional[ExclusionReason] = None
    aligned_bases: int = 0
    region_bases: Dict[RegionCategory, int] = field(default_factory=dict)
    ignored_bases: int = 0
    ignored_read: bool = False
    strand: StrandAgreement = StrandAgreement.UNDETERMINED
    ribosomal: Optional[bool] = None
    coverage_bins: Tuple[int, ...] = ()
    methylation_gate: Optional[MethylationGate] = None
    methylation_calls: Tuple[MethylationCall, ...] = ()
    reference_missing: bool = False

    @property
    def counted_bases(self) -> int:
        """Bases accounted for in exactly one region category or as ignored."""
        return sum(self.region_bases.values()) + self.ignored_bases


@dataclass(frozen=True)
class ReadGroup:
    """Read group header entry."""
    id: str
    sample: Optional[str] = None
    library: Optional[str] = None


@dataclass(frozen=True)
class GroupingKey:
    """Identity of one LevelAccumulator."""
    level: AccumulationLevel
    name: str = ""

    @property
    def sort_key(self) -> Tuple[int, str]:
        return (self.level.order, self.name)

    def __str__(self) -> str:
        if self.level is AccumulationLevel.ALL_READS:
            return self.level.value
        return "{}:{}".format(self.level.value, self.name)


ALL_READS_KEY = GroupingKey(AccumulationLevel.ALL_READS)
