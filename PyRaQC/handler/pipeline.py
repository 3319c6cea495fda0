"""Record stream driver.

Feeds alignment records through exclusion, reference lookup and
classification into a MultiLevelAccumulator.

Two modes are available:
- sequential: classify and ingest in the calling process
- pooled: classify chunks of records in worker processes, ingest in the
  calling process in input order. The calling process stays the only
  writer of every accumulator.
"""
from __future__ import annotations

import logging
from collections import deque
from concurrent.futures import Future, ProcessPoolExecutor
from dataclasses import dataclass, field
from itertools import islice
from typing import (
    Any, Callable, Deque, Dict, Iterable, Iterator, List, Optional, Set, Tuple
)

from PyRaQC.core.classifier import Classifier
from PyRaQC.core.exceptions import MissingReferenceSequenceError
from PyRaQC.core.models import AlignmentRecord, Classification, ReferenceWindow
from PyRaQC.core.multilevel import MultiLevelAccumulator, exclusion_reason
from PyRaQC.reader.reference import ReferenceReader
from PyRaQC.utils.progress import ReferencePositionProgress

logger = logging.getLogger(__name__)

DEFAULT_CHUNKSIZE = 2000
RecordFilter = Callable[[AlignmentRecord], bool]


@dataclass
class PipelineSummary:
    """Stream level tallies not attributable to a single grouping key."""
    records: int = 0
    records_filtered: int = 0
    missing_reference: int = 0
    missing_sequences: Set[str] = field(default_factory=set)

    def log(self) -> None:
        logger.info("Processed {:,} records.".format(self.records))
        if self.records_filtered:
            logger.info("{:,} records on unselected sequences were not considered.".format(
                self.records_filtered))
        if self.missing_reference:
            logger.warning("{:,} records had no reference context (sequences: {}).".format(
                self.missing_reference, ", ".join(sorted(self.missing_sequences))))


def fetch_window(record: AlignmentRecord, reference: Optional[ReferenceReader],
                 summary: Optional[PipelineSummary] = None) -> Optional[ReferenceWindow]:
    """Reference window of a record, or None if unavailable.

    A MissingReferenceSequenceError is recovered here: the record is still
    classified, without reference context.
    """
    if reference is None or exclusion_reason(record) is not None:
        return None
    try:
        return reference.window_for(record)
    except MissingReferenceSequenceError as e:
        logger.debug("{}: {}".format(record.name, e))
        if summary is not None:
            summary.missing_reference += 1
            summary.missing_sequences.add(e.sequence)
        return None


def classify_record(record: AlignmentRecord, classifier: Classifier,
                    window: Optional[ReferenceWindow]) -> Classification:
    reason = exclusion_reason(record)
    if reason is not None:
        return Classification(excluded=reason)
    return classifier(record, window)


def chunked(records: Iterable[AlignmentRecord], size: int) -> Iterator[List[AlignmentRecord]]:
    it = iter(records)
    while True:
        chunk = list(islice(it, size))
        if not chunk:
            return
        yield chunk


# Worker side of the pooled mode. Each worker opens its own reference.
_worker: Dict[str, Any] = {}


def _init_worker(classifier: Classifier, reference_path: Optional[str]) -> None:
    _worker["classifier"] = classifier
    _worker["reference"] = ReferenceReader(reference_path) if reference_path else None


def _classify_chunk(chunk: List[AlignmentRecord]) -> Tuple[List[Classification], PipelineSummary]:
    classifier = _worker["classifier"]
    reference = _worker["reference"]
    summary = PipelineSummary()
    classifications = [
        classify_record(record, classifier, fetch_window(record, reference, summary))
        for record in chunk
    ]
    return classifications, summary


class MetricsPipeline:
    """Drive a record stream into a MultiLevelAccumulator.

    Args:
        multilevel: Accumulators to feed; its classifier is used
        reference: Reference lookup for strategies needing reference bases
        reference_path: Path of the reference, reopened by pooled workers
        nproc: Number of classification processes. 1 runs sequentially.
        include: Predicate selecting records to consider at all
        progress: Progress bar keyed on reference position
        chunksize: Records per pooled task
    """

    def __init__(self, multilevel: MultiLevelAccumulator,
                 reference: Optional[ReferenceReader] = None,
                 reference_path: Optional[str] = None,
                 nproc: int = 1,
                 include: Optional[RecordFilter] = None,
                 progress: Optional[ReferencePositionProgress] = None,
                 chunksize: int = DEFAULT_CHUNKSIZE) -> None:
        self.multilevel = multilevel
        self.reference = reference
        self.reference_path = reference_path
        self.nproc = nproc
        self.include = include
        self.progress = progress
        self.chunksize = chunksize
        self.summary = PipelineSummary()

    def _selected(self, records: Iterable[AlignmentRecord]) -> Iterator[AlignmentRecord]:
        for record in records:
            self.summary.records += 1
            if self.progress is not None:
                self.progress.step(record.sequence, record.start)
            if (self.include is not None and exclusion_reason(record) is None
                    and not self.include(record)):
                self.summary.records_filtered += 1
                continue
            yield record

    def run(self, records: Iterable[AlignmentRecord]) -> PipelineSummary:
        """Consume records. Accumulators are left open for finish_all()."""
        if self.nproc > 1:
            logger.info("Classify records with {} worker processes.".format(self.nproc))
            self._run_pooled(self._selected(records))
        else:
            self._run_sequential(self._selected(records))
        if self.progress is not None:
            self.progress.clean()
        self.summary.log()
        return self.summary

    def _run_sequential(self, records: Iterable[AlignmentRecord]) -> None:
        for record in records:
            self.multilevel.route(record, fetch_window(record, self.reference, self.summary))

    def _run_pooled(self, records: Iterable[AlignmentRecord]) -> None:
        if self.multilevel.classifier is None:
            raise ValueError("No classifier was given to route records.")

        pending: Deque[Tuple[List[AlignmentRecord], Future]] = deque()
        with ProcessPoolExecutor(max_workers=self.nproc, initializer=_init_worker,
                                 initargs=(self.multilevel.classifier, self.reference_path)) as executor:
            for chunk in chunked(records, self.chunksize):
                pending.append((chunk, executor.submit(_classify_chunk, chunk)))
                # bound the number of chunks in flight
                if len(pending) >= self.nproc * 2:
                    self._ingest_chunk(*pending.popleft())
            while pending:
                self._ingest_chunk(*pending.popleft())

    def _ingest_chunk(self, chunk: List[AlignmentRecord], future: Future) -> None:
        classifications, summary = future.result()
        for record, classification in zip(chunk, classifications):
            self.multilevel.ingest(record, classification)
        self.summary.missing_reference += summary.missing_reference
        self.summary.missing_sequences |= summary.missing_sequences
