"""Readers for gene and ribosomal annotation files.

refFlat rows are 0-based half-open (UCSC convention); interval_list rows
are 1-based closed. Both are converted to the 1-based closed coordinates
of the core here.
"""
from __future__ import annotations

import gzip
import logging
import os
from contextlib import contextmanager
from typing import IO, Collection, Iterator, List, Optional, Set, Tuple, Union

from PyRaQC.core.annotation import TranscriptModel
from PyRaQC.core.exceptions import AnnotationFormatError, MalformedIntervalError
from PyRaQC.core.interval import IntervalIndex
from PyRaQC.core.models import GenomicInterval
from PyRaQC.utils.output import catch_IOError

logger = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]

REFFLAT_COLUMNS = 11
RIBOSOMAL_KIND = "rRNA"


@contextmanager
def _open_text(path: PathLike) -> Iterator[IO[str]]:
    if str(path).endswith(".gz"):
        fp = gzip.open(path, "rt")
    else:
        fp = open(path)
    try:
        yield fp
    finally:
        fp.close()


def _parse_positions(field: str) -> List[int]:
    return [int(v) for v in field.strip().rstrip(',').split(',') if v]


def parse_refflat_line(line: str, lineno: int = 0) -> TranscriptModel:
    """Parse a single refFlat row.

    Raises:
        AnnotationFormatError: If the row cannot be parsed
    """
    cols = line.rstrip("\r\n").split('\t')
    if len(cols) < REFFLAT_COLUMNS:
        raise AnnotationFormatError(
            "refFlat line {}: expected {} columns, found {}".format(
                lineno, REFFLAT_COLUMNS, len(cols)))

    gene, name, sequence, strand = cols[:4]
    if strand not in ('+', '-'):
        raise AnnotationFormatError(
            "refFlat line {}: invalid strand '{}'".format(lineno, strand))
    try:
        tx_start, tx_end, cds_start, cds_end, exon_count = (int(v) for v in cols[4:9])
        exon_starts = _parse_positions(cols[9])
        exon_ends = _parse_positions(cols[10])
    except ValueError as e:
        raise AnnotationFormatError("refFlat line {}: {}".format(lineno, e)) from e

    if not (exon_count == len(exon_starts) == len(exon_ends)):
        raise AnnotationFormatError(
            "refFlat line {}: exon count {} does not match {} starts and {} ends".format(
                lineno, exon_count, len(exon_starts), len(exon_ends)))

    try:
        return TranscriptModel(
            name=name,
            gene=gene,
            sequence=sequence,
            strand=strand,
            start=tx_start + 1,
            end=tx_end,
            cds_start=cds_start + 1,
            cds_end=cds_end,
            exons=tuple((s + 1, e) for s, e in zip(exon_starts, exon_ends))
        )
    except MalformedIntervalError as e:
        raise AnnotationFormatError("refFlat line {}: {}".format(lineno, e)) from e


@catch_IOError(logger)
def read_refflat(path: PathLike,
                 sequences: Optional[Collection[str]] = None) -> List[TranscriptModel]:
    """Load transcripts from a refFlat file.

    Args:
        path: refFlat file, optionally gzipped
        sequences: Known reference sequences. Transcripts on other sequences
            are skipped.

    Returns:
        TranscriptModels in file order

    Raises:
        AnnotationFormatError: If a row is malformed
    """
    logger.info("Read gene annotations from '{}'".format(path))
    known = set(sequences) if sequences is not None else None
    skipped: Set[str] = set()

    transcripts = []
    with _open_text(path) as fp:
        for lineno, line in enumerate(fp, 1):
            if not line.strip() or line.startswith('#'):
                continue
            transcript = parse_refflat_line(line, lineno)
            if known is not None and transcript.sequence not in known:
                skipped.add(transcript.sequence)
                continue
            transcripts.append(transcript)

    if skipped:
        logger.warning("Skipped transcripts on {} sequence(s) absent from the alignment "
                       "header: {}".format(len(skipped), ", ".join(sorted(skipped))))
    return transcripts


def _parse_sq_line(line: str) -> Optional[Tuple[str, int]]:
    name = length = None
    for tag in line.rstrip("\r\n").split('\t')[1:]:
        if tag.startswith("SN:"):
            name = tag[3:]
        elif tag.startswith("LN:"):
            length = int(tag[3:])
    if name is None:
        return None
    return name, (length or 0)


def parse_interval_line(line: str, lineno: int = 0, kind: str = RIBOSOMAL_KIND) -> GenomicInterval:
    cols = line.rstrip("\r\n").split('\t')
    if len(cols) < 3:
        raise AnnotationFormatError(
            "interval_list line {}: expected at least 3 columns, found {}".format(lineno, len(cols)))
    try:
        start, end = int(cols[1]), int(cols[2])
    except ValueError as e:
        raise AnnotationFormatError("interval_list line {}: {}".format(lineno, e)) from e
    strand = cols[3] if len(cols) > 3 and cols[3] in ('+', '-') else '+'
    name = cols[4] if len(cols) > 4 else "{}:{}-{}".format(cols[0], start, end)
    return GenomicInterval(cols[0], start, end, strand, kind, name)


@catch_IOError(logger)
def read_interval_list(path: PathLike,
                       kind: str = RIBOSOMAL_KIND) -> Tuple[List[GenomicInterval], List[Tuple[str, int]]]:
    """Load an interval_list file.

    Returns:
        (intervals, header sequences as (name, length) pairs)

    Raises:
        AnnotationFormatError: If a row is malformed
    """
    logger.info("Read intervals from '{}'".format(path))
    intervals: List[GenomicInterval] = []
    header: List[Tuple[str, int]] = []
    with _open_text(path) as fp:
        for lineno, line in enumerate(fp, 1):
            if not line.strip():
                continue
            if line.startswith('@'):
                if line.startswith("@SQ"):
                    sq = _parse_sq_line(line)
                    if sq is not None:
                        header.append(sq)
                continue
            intervals.append(parse_interval_line(line, lineno, kind))
    logger.info("Loaded {} {} intervals.".format(len(intervals), kind))
    return intervals, header


def load_ribosomal_index(path: Optional[PathLike],
                         sequences: Optional[Collection[str]] = None) -> Optional[IntervalIndex]:
    """Index ribosomal intervals, or return None if no file was given.

    Raises:
        AnnotationFormatError: If a row is malformed
        UnknownSequenceError: If an interval names a sequence not in sequences
    """
    if path is None:
        logger.info("No ribosomal intervals given; rRNA metrics are not computed.")
        return None
    intervals, _ = read_interval_list(path)
    if not intervals:
        logger.warning("'{}' contains no intervals; rRNA metrics are not computed.".format(path))
    return IntervalIndex.load(intervals, sequences)
