"""Static spatial index over genomic intervals.

Intervals are bucketed by sequence and sorted by start. Alongside the start
positions each bucket keeps a running maximum of end positions, which is
monotonic and can therefore be bisected as well. A query bisects both
arrays to find the only window that can contain overlapping intervals and
scans that window alone.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from typing import (
    Collection, Dict, Iterable, Iterator, List, Mapping, Optional, Set, Tuple, Union
)

import numpy as np
import numpy.typing as npt

from .exceptions import MalformedIntervalError, UnknownSequenceError
from .models import GenomicInterval

logger = logging.getLogger(__name__)

SequenceDictionary = Union[Mapping[str, int], Collection[str]]


class _SequenceBucket:
    """Sorted intervals of one reference sequence."""

    __slots__ = ("intervals", "starts", "ends", "max_ends")

    intervals: List[GenomicInterval]
    starts: npt.NDArray[np.int64]
    ends: npt.NDArray[np.int64]
    max_ends: npt.NDArray[np.int64]

    def __init__(self, intervals: Iterable[GenomicInterval]) -> None:
        self.intervals = sorted(intervals, key=lambda iv: (iv.start, iv.end))
        self.starts = np.fromiter((iv.start for iv in self.intervals), dtype=np.int64,
                                  count=len(self.intervals))
        self.ends = np.fromiter((iv.end for iv in self.intervals), dtype=np.int64,
                                count=len(self.intervals))
        self.max_ends = np.maximum.accumulate(self.ends) if len(self.ends) else self.ends

    def candidates(self, start: int, end: int) -> Iterator[GenomicInterval]:
        hi = int(np.searchsorted(self.starts, end, side="right"))
        lo = int(np.searchsorted(self.max_ends, start, side="left"))
        if lo >= hi:
            return
        for i in np.flatnonzero(self.ends[lo:hi] >= start):
            yield self.intervals[lo + int(i)]


class IntervalIndex:
    """Query-only overlap index.

    Build with :meth:`load`; instances are never mutated afterwards and may
    be shared freely between classification workers.
    """

    _buckets: Dict[str, _SequenceBucket]

    def __init__(self, buckets: Dict[str, _SequenceBucket]) -> None:
        self._buckets = buckets
        self._size = sum(len(b.intervals) for b in buckets.values())

    @classmethod
    def load(cls,
             intervals: Iterable[GenomicInterval],
             sequence_dictionary: Optional[SequenceDictionary] = None) -> "IntervalIndex":
        """Build an index from intervals.

        Args:
            intervals: Intervals to index
            sequence_dictionary: Known reference sequences (names, or a
                name to length mapping). When given, every interval must
                refer to one of them.

        Returns:
            New IntervalIndex

        Raises:
            MalformedIntervalError: If an interval has start > end
            UnknownSequenceError: If an interval names an unknown sequence
        """
        known = set(sequence_dictionary) if sequence_dictionary is not None else None

        grouped: Dict[str, List[GenomicInterval]] = defaultdict(list)
        for iv in intervals:
            if iv.start > iv.end:
                raise MalformedIntervalError(
                    "Interval '{}' on {} has start {} > end {}".format(
                        iv.name, iv.sequence, iv.start, iv.end)
                )
            if known is not None and iv.sequence not in known:
                raise UnknownSequenceError(
                    "Interval '{}' refers to sequence '{}' which is not in the "
                    "sequence dictionary".format(iv.name, iv.sequence)
                )
            grouped[iv.sequence].append(iv)

        index = cls({seq: _SequenceBucket(ivs) for seq, ivs in grouped.items()})
        logger.debug("Indexed {} intervals on {} sequences.".format(len(index), len(grouped)))
        return index

    @classmethod
    def empty(cls) -> "IntervalIndex":
        return cls({})

    def __len__(self) -> int:
        return self._size

    def __iter__(self) -> Iterator[GenomicInterval]:
        for bucket in self._buckets.values():
            yield from bucket.intervals

    @property
    def sequences(self) -> Tuple[str, ...]:
        return tuple(self._buckets)

    def overlapping(self, sequence: str, start: int, end: int) -> Set[GenomicInterval]:
        """Return every interval intersecting the closed range [start, end]."""
        bucket = self._buckets.get(sequence)
        if bucket is None or start > end:
            return set()
        return set(bucket.candidates(start, end))

    def overlap_length(self, sequence: str, start: int, end: int) -> int:
        """Number of bases in [start, end] covered by at least one interval."""
        bucket = self._buckets.get(sequence)
        if bucket is None or start > end:
            return 0

        covered = 0
        cur_start = cur_end = None
        # candidates come sorted by start, so a single merge pass is enough
        for iv in bucket.candidates(start, end):
            s, e = max(iv.start, start), min(iv.end, end)
            if cur_end is None or s > cur_end + 1:
                if cur_end is not None:
                    covered += cur_end - cur_start + 1
                cur_start, cur_end = s, e
            elif e > cur_end:
                cur_end = e
        if cur_end is not None:
            covered += cur_end - cur_start + 1
        return covered
