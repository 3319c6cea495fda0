"""Reference base lookup backed by pysam.FastaFile.

Records are expected in coordinate order, so the bases of the current
sequence are cached and re-fetched only when the sequence changes.
"""
from __future__ import annotations

import logging
import weakref
from typing import Any, Dict, Literal, Optional, Tuple

import sys
if sys.version_info >= (3, 11):
    from typing import Self
else:
    from typing_extensions import Self

import pysam

from PyRaQC.core.exceptions import MissingReferenceSequenceError
from PyRaQC.core.models import AlignmentRecord, ReferenceWindow

logger = logging.getLogger(__name__)


class ReferenceReader:
    """Reference windows for alignment records.

    Args:
        path: Indexed FASTA file
        flank: Bases added on both sides of a record's span
    """

    def __init__(self, path: str, flank: int = 1) -> None:
        self._path = path
        self.flank = flank
        self._fasta = pysam.FastaFile(path)
        self._finalizer = weakref.finalize(self, self._fasta.close)
        self._cached: Tuple[Optional[str], str] = (None, "")
        logger.info("Read reference sequences from '{}'".format(path))

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
    def sequence_dictionary(self) -> Dict[str, int]:
        return dict(zip(self._fasta.references, self._fasta.lengths))

    def _bases(self, sequence: str) -> str:
        name, bases = self._cached
        if name != sequence:
            if sequence not in self._fasta.references:
                raise MissingReferenceSequenceError(sequence)
            logger.debug("Load reference sequence '{}'".format(sequence))
            bases = self._fasta.fetch(sequence).upper()
            self._cached = (sequence, bases)
        return bases

    def window(self, sequence: str, start: int, end: int) -> ReferenceWindow:
        """Bases of [start - flank, end + flank], clipped to the sequence.

        Raises:
            MissingReferenceSequenceError: If the sequence is not in the FASTA
        """
        bases = self._bases(sequence)
        first = max(1, start - self.flank)
        last = min(len(bases), end + self.flank)
        return ReferenceWindow(sequence, first, bases[first - 1:last])

    def window_for(self, record: AlignmentRecord) -> ReferenceWindow:
        if record.sequence is None:
            raise MissingReferenceSequenceError("*")
        return self.window(record.sequence, record.start, record.end)
