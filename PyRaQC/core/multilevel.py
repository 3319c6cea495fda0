"""Fan-out of classified records to every matching grouping key.

Grouping keys are resolved once at setup from the configured accumulation
levels and the read groups of the input header. Accumulators are kept in
a flat list (the arena) and each read-group id maps to the tuple of arena
indices it feeds, so routing a record is a single dictionary lookup.
"""
from __future__ import annotations

import logging
from typing import (
    Callable, Dict, Iterable, List, Optional, Set, Tuple
)

from .accumulator import FinishedAccumulator, LevelAccumulator
from .classifier import Classifier
from .models import (
    ALL_READS_KEY, AccumulationLevel, AlignmentRecord, Classification,
    ExclusionReason, GroupingKey, ReadGroup, ReferenceWindow
)

logger = logging.getLogger(__name__)

AccumulatorFactory = Callable[[GroupingKey], LevelAccumulator]


def exclusion_reason(record: AlignmentRecord) -> Optional[ExclusionReason]:
    """Reason for dropping a record before classification, if any."""
    if record.is_unmapped or record.sequence is None:
        return ExclusionReason.UNMAPPED
    if record.is_duplicate:
        return ExclusionReason.DUPLICATE
    if record.is_secondary or record.is_supplementary:
        return ExclusionReason.SECONDARY
    if record.is_qc_fail:
        return ExclusionReason.QC_FAIL
    return None


def resolve_keys(levels: Iterable[AccumulationLevel],
                 read_groups: Iterable[ReadGroup]) -> Tuple[List[GroupingKey],
                                                            Dict[str, Tuple[int, ...]]]:
    """Resolve grouping keys and the read-group routing table.

    Args:
        levels: Configured accumulation levels. ALL_READS is always added.
        read_groups: Header read groups in header order

    Returns:
        (keys, routes): keys in arena order, and read-group id to the arena
        indices a record of that read group must be ingested into
    """
    levels = set(levels)
    keys: List[GroupingKey] = [ALL_READS_KEY]
    arena: Dict[GroupingKey, int] = {ALL_READS_KEY: 0}

    def _index(key: GroupingKey) -> int:
        if key not in arena:
            arena[key] = len(keys)
            keys.append(key)
        return arena[key]

    routes: Dict[str, Tuple[int, ...]] = {}
    for rg in read_groups:
        if rg.id in routes:
            logger.warning("Duplicated read group '{}' in header; "
                           "the first definition is used.".format(rg.id))
            continue

        indices = [0]
        if AccumulationLevel.SAMPLE in levels and rg.sample is not None:
            indices.append(_index(GroupingKey(AccumulationLevel.SAMPLE, rg.sample)))
        if AccumulationLevel.LIBRARY in levels and rg.library is not None:
            indices.append(_index(GroupingKey(AccumulationLevel.LIBRARY, rg.library)))
        if AccumulationLevel.READ_GROUP in levels:
            indices.append(_index(GroupingKey(AccumulationLevel.READ_GROUP, rg.id)))
        routes[rg.id] = tuple(indices)

    return keys, routes


class MultiLevelAccumulator:
    """Owner of every LevelAccumulator of a run.

    Use :meth:`setup` to build an instance. A record is classified once and
    the same Classification is ingested into up to four accumulators:
    ALL_READS, its sample, its library and its read group.
    """

    _UNROUTED = (0, )

    def __init__(self, accumulators: List[LevelAccumulator],
                 routes: Dict[str, Tuple[int, ...]],
                 classifier: Optional[Classifier] = None) -> None:
        self.accumulators = accumulators
        self.routes = routes
        self.classifier = classifier
        self._warned: Set[str] = set()

    @classmethod
    def setup(cls, levels: Iterable[AccumulationLevel],
              read_groups: Iterable[ReadGroup],
              factory: AccumulatorFactory,
              classifier: Optional[Classifier] = None) -> "MultiLevelAccumulator":
        """Create one accumulator per resolved grouping key.

        Args:
            levels: Configured accumulation levels
            read_groups: Read groups declared in the input header
            factory: Creates an empty LevelAccumulator for a key
            classifier: Classifier used by :meth:`route`

        Returns:
            New MultiLevelAccumulator
        """
        keys, routes = resolve_keys(levels, read_groups)
        logger.info("Accumulating metrics for {} grouping key(s).".format(len(keys)))
        for key in keys:
            logger.debug("Grouping key: {}".format(key))
        return cls([factory(key) for key in keys], routes, classifier)

    @property
    def keys(self) -> List[GroupingKey]:
        return [acc.key for acc in self.accumulators]

    def __len__(self) -> int:
        return len(self.accumulators)

    def _indices(self, read_group: Optional[str]) -> Tuple[int, ...]:
        if read_group is None:
            return self._UNROUTED
        indices = self.routes.get(read_group)
        if indices is None:
            if read_group not in self._warned:
                self._warned.add(read_group)
                logger.warning("Read group '{}' is not declared in the header; "
                               "its records count toward ALL_READS only.".format(read_group))
            return self._UNROUTED
        return indices

    def classify(self, record: AlignmentRecord,
                 window: Optional[ReferenceWindow] = None) -> Classification:
        """Classify a record, short-circuiting excluded ones."""
        reason = exclusion_reason(record)
        if reason is not None:
            return Classification(excluded=reason)
        if self.classifier is None:
            raise ValueError("No classifier was given to route records.")
        return self.classifier(record, window)

    def ingest(self, record: AlignmentRecord, classification: Classification) -> None:
        """Ingest an already computed classification of record."""
        for i in self._indices(record.read_group):
            self.accumulators[i].ingest(classification)

    def route(self, record: AlignmentRecord,
              window: Optional[ReferenceWindow] = None) -> Classification:
        """Classify a record once and ingest it into every matching accumulator.

        Returns:
            The Classification that was ingested
        """
        classification = self.classify(record, window)
        self.ingest(record, classification)
        return classification

    def finish_all(self) -> List[Tuple[GroupingKey, FinishedAccumulator]]:
        """Finish every accumulator.

        Returns:
            (key, FinishedAccumulator) pairs ordered by level, then name

        Raises:
            AlreadyFinishedError: If called more than once
        """
        finished = [(acc.key, acc.finish()) for acc in self.accumulators]
        return sorted(finished, key=lambda item: item[0].sort_key)
