"""SAM/BAM input for the metric pipelines.

BAMFileProcessor wraps pysam.AlignmentFile, exposes the header values the
engine needs (sequence dictionary, read groups, sort order) and converts
pysam segments into AlignmentRecord values.
"""
from __future__ import annotations

import logging
import weakref
from typing import Any, Dict, Iterator, List, Literal, Optional, Tuple

import sys
if sys.version_info >= (3, 11):
    from typing import Self
else:
    from typing_extensions import Self

import pysam

from PyRaQC.core.models import AlignmentBlock, AlignmentRecord, ReadGroup

logger = logging.getLogger(__name__)

# CIGAR operations consuming read bases and/or reference bases
_ALIGNED_OPS = frozenset((pysam.CMATCH, pysam.CEQUAL, pysam.CDIFF))
_READ_OPS = frozenset((pysam.CINS, pysam.CSOFT_CLIP))
_REF_OPS = frozenset((pysam.CDEL, pysam.CREF_SKIP))


class BAMValidationError(ValueError):
    """Raised when an alignment file cannot be used."""
    pass


def alignment_blocks(segment: pysam.AlignedSegment) -> Tuple[AlignmentBlock, ...]:
    """Gapless aligned blocks of a segment in 1-based reference coordinates."""
    if segment.cigartuples is None:
        return ()
    blocks = []
    read_pos = 0
    ref_pos = segment.reference_start + 1
    for op, length in segment.cigartuples:
        if op in _ALIGNED_OPS:
            blocks.append(AlignmentBlock(read_pos, ref_pos, length))
            read_pos += length
            ref_pos += length
        elif op in _READ_OPS:
            read_pos += length
        elif op in _REF_OPS:
            ref_pos += length
    return tuple(blocks)


def to_alignment_record(segment: pysam.AlignedSegment) -> AlignmentRecord:
    """Convert a pysam segment to an AlignmentRecord."""
    start = segment.reference_start + 1 if segment.reference_start >= 0 else 0
    end = segment.reference_end if segment.reference_end is not None else start
    qualities = segment.query_qualities
    paired = segment.is_paired

    return AlignmentRecord(
        name=segment.query_name or "",
        sequence=None if segment.is_unmapped else segment.reference_name,
        start=start,
        end=end,
        is_reverse=segment.is_reverse,
        mapping_quality=segment.mapping_quality,
        blocks=() if segment.is_unmapped else alignment_blocks(segment),
        bases=segment.query_sequence or "",
        qualities=tuple(qualities) if qualities is not None else None,
        read_group=segment.get_tag("RG") if segment.has_tag("RG") else None,
        is_paired=paired,
        is_read2=paired and segment.is_read2,
        mate_unmapped=(not paired) or segment.mate_is_unmapped,
        mate_sequence=segment.next_reference_name if paired and not segment.mate_is_unmapped else None,
        mate_start=segment.next_reference_start + 1 if paired and segment.next_reference_start >= 0 else None,
        template_length=segment.template_length,
        is_unmapped=segment.is_unmapped,
        is_duplicate=segment.is_duplicate,
        is_secondary=segment.is_secondary,
        is_supplementary=segment.is_supplementary,
        is_qc_fail=segment.is_qcfail
    )


class BAMFileProcessor:
    """Alignment file reader yielding AlignmentRecord values.

    Usage:
        with BAMFileProcessor(path) as bam:
            read_groups = bam.read_groups
            for record in bam.records():
                ...
    """

    def __init__(self, path: str, *args: Any, **kwargs: Any) -> None:
        """Open an alignment file.

        Args:
            path: Path to a SAM/BAM/CRAM file
            *args: Arguments passed to pysam.AlignmentFile
            **kwargs: Keyword arguments passed to pysam.AlignmentFile

        Raises:
            BAMValidationError: If pysam cannot parse the file
        """
        self._path = path
        try:
            self._af = pysam.AlignmentFile(path, *args, **kwargs)
        except ValueError as e:
            raise BAMValidationError("'{}': {}".format(path, e)) from e
        self._finalizer = weakref.finalize(self, self._safe_close, self._af)

    @staticmethod
    def _safe_close(af: pysam.AlignmentFile) -> None:
        if af is not None and not af.closed:
            af.close()

    def close(self) -> None:
        if self._finalizer.alive:
            self._finalizer()

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: Optional[type], exc: Optional[BaseException],
                 tb: Optional[Any]) -> Literal[False]:
        self.close()
        return False

    @property
    def closed(self) -> bool:
        return self._af.closed

    @property
    def references(self) -> Tuple[str, ...]:
        return self._af.references

    @property
    def lengths(self) -> Tuple[int, ...]:
        return self._af.lengths

    @property
    def sequence_dictionary(self) -> Dict[str, int]:
        """Reference sequence name to length, in header order."""
        return dict(zip(self._af.references, self._af.lengths))

    @property
    def _header(self) -> Dict[str, Any]:
        return self._af.header.to_dict()

    @property
    def read_groups(self) -> List[ReadGroup]:
        """@RG entries in header order."""
        return [ReadGroup(rg["ID"], rg.get("SM"), rg.get("LB"))
                for rg in self._header.get("RG", []) if "ID" in rg]

    @property
    def single_library(self) -> Optional[str]:
        """Library of the only @RG entry, None unless there is exactly one."""
        read_groups = self.read_groups
        if len(read_groups) != 1:
            return None
        return read_groups[0].library

    @property
    def sort_order(self) -> Optional[str]:
        return self._header.get("HD", {}).get("SO")

    def check_sort_order(self, assume_sorted: bool = False) -> bool:
        """Require the header to declare coordinate sort order.

        With `assume_sorted` a missing or different SO tag is only
        warned about and False is returned.

        Raises:
            BAMValidationError: If the file is not declared coordinate sorted
                and `assume_sorted` is False
        """
        if self.sort_order == "coordinate":
            return True
        if assume_sorted:
            logger.warning("'{}' is not declared as coordinate sorted (SO:{}); "
                           "treating it as sorted.".format(self._path, self.sort_order))
            return False
        logger.error("Input must be coordinate sorted. Sort it or pass --assume-sorted.")
        raise BAMValidationError("'{}' is not declared as coordinate sorted (SO:{})".format(
            self._path, self.sort_order))

    def validate(self) -> None:
        """Raise BAMValidationError if the file has no reference sequences."""
        if not self._af.references:
            logger.error("Alignment file has no reference sequences")
            raise BAMValidationError("'{}' has no reference sequences".format(self._path))

    def __iter__(self) -> Iterator[pysam.AlignedSegment]:
        return self._af.fetch(until_eof=True)

    def records(self) -> Iterator[AlignmentRecord]:
        for segment in self:
            yield to_alignment_record(segment)
