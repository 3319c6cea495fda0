"""Output data models.

Flat per-grouping-key metric records and the histograms emitted next to
them. Metric values that could not be computed are None in memory and are
serialized as the NOT_COMPUTED sentinel.
"""
from dataclasses import asdict, dataclass, field, fields
from typing import Any, Dict, Generator, List, Optional, Tuple, Union

from PyRaQC.core.constants import NOT_COMPUTED

def as_output_value(value: Any) -> Any:
    """Map None to the "not computed" sentinel."""
    return NOT_COMPUTED if value is None else value


@dataclass
class MetricsRecord:
    """Base class of flat output rows.

    The first three columns identify the grouping key; only the column of
    the key's own level is filled.
    """
    sample: str
    library: str
    read_group: str

    @classmethod
    def header(cls) -> List[str]:
        return [f.name for f in fields(cls)]

    def values(self) -> List[Any]:
        return [as_output_value(v) for v in asdict(self).values()]

    def items(self) -> Generator[Tuple[str, Any], None, None]:
        """Yield (column, serialized value) pairs."""
        yield from zip(self.header(), self.values())


@dataclass
class RnaSeqMetrics(MetricsRecord):
    records_seen: int
    excluded_unmapped: int
    excluded_duplicate: int
    excluded_secondary: int
    excluded_qc_fail: int
    aligned_bases: int
    ribosomal_bases: Optional[int]
    coding_bases: int
    utr_bases: int
    intronic_bases: int
    intergenic_bases: int
    ignored_bases: int
    ignored_reads: int
    correct_strand_reads: int
    incorrect_strand_reads: int
    ambiguous_strand_reads: int
    pct_ribosomal_bases: Optional[float]
    pct_coding_bases: Optional[float]
    pct_utr_bases: Optional[float]
    pct_intronic_bases: Optional[float]
    pct_intergenic_bases: Optional[float]
    pct_mrna_bases: Optional[float]
    pct_ignored_bases: Optional[float]
    pct_correct_strand_reads: Optional[float]
    median_coverage: Optional[float]
    cv_coverage: Optional[float]
    five_prime_bias: Optional[float]
    three_prime_bias: Optional[float]
    five_to_three_prime_bias: Optional[float]


@dataclass
class RrbsSummaryMetrics(MetricsRecord):
    records_seen: int
    excluded_unmapped: int
    excluded_duplicate: int
    excluded_secondary: int
    excluded_qc_fail: int
    reads_aligned: int
    reads_ignored_short: int
    reads_ignored_mismatches: int
    reads_missing_reference: int
    reads_with_no_cpg: int
    records_skipped: int
    non_cpg_bases: int
    non_cpg_converted_bases: int
    non_cpg_conversion_rate: Optional[float]
    pct_non_cpg_bases_converted: Optional[float]
    cpg_bases_seen: int
    cpg_bases_converted: int
    cpg_conversion_rate: Optional[float]
    pct_cpg_bases_converted: Optional[float]
    filtered_calls: int
    mean_cpg_coverage: Optional[float]
    median_cpg_coverage: Optional[float]


@dataclass
class RrbsCpgDetailMetrics(MetricsRecord):
    sequence: str
    position: int
    total_sites: int
    converted_sites: int
    unconverted_sites: int
    conversion_rate: Optional[float]
    pct_converted: Optional[float]


@dataclass
class Histogram:
    """Named histogram of one grouping key.

    Attributes:
        name: Histogram name, e.g. 'coverage_by_position'
        key: String form of the grouping key
        bin_label: Name of the bin column
        value_label: Name of the count column
        bins: Bin -> count, in ascending bin order
    """
    name: str
    key: str
    bin_label: str
    value_label: str
    bins: Dict[Union[int, float], Union[int, float]] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return any(self.bins.values())


@dataclass
class MetricsReport:
    """Everything emitted for one run.

    `subtitle` labels the figures, usually with the library of a
    single-read-group input.
    """
    metrics: List[MetricsRecord] = field(default_factory=list)
    details: List[MetricsRecord] = field(default_factory=list)
    histograms: List[Histogram] = field(default_factory=list)
    subtitle: Optional[str] = None

    @property
    def has_histogram_data(self) -> bool:
        """True if at least one histogram has a non-zero count."""
        return any(self.histograms)

    def histograms_named(self, name: str) -> List[Histogram]:
        return [h for h in self.histograms if h.name == name]
