"""Tests for grouping key resolution and record routing."""
import unittest
from functools import partial
from unittest.mock import Mock

from PyRaQC.core.accumulator import LevelAccumulator
from PyRaQC.core.exceptions import AlreadyFinishedError
from PyRaQC.core.models import (
    ALL_READS_KEY, AccumulationLevel, Classification, ExclusionReason, GroupingKey
)
from PyRaQC.core.multilevel import MultiLevelAccumulator, exclusion_reason, resolve_keys
from tests.utils.test_data_generator import make_read_groups, make_record, make_unmapped_record

ALL_LEVELS = set(AccumulationLevel)
READ_GROUPS = make_read_groups(("rg1", "S1", "L1"), ("rg2", "S1", "L2"), ("rg3", "S2", "L1"))


def _key(level, name):
    return GroupingKey(AccumulationLevel[level], name)


def _classifier(record, window):
    return Classification(aligned_bases=record.aligned_bases)


class TestExclusionReason(unittest.TestCase):

    def test_priority(self):
        self.assertEqual(exclusion_reason(make_unmapped_record(is_duplicate=True)),
                         ExclusionReason.UNMAPPED)
        self.assertEqual(exclusion_reason(make_record(1, is_duplicate=True, is_secondary=True)),
                         ExclusionReason.DUPLICATE)
        self.assertEqual(exclusion_reason(make_record(1, is_supplementary=True, is_qc_fail=True)),
                         ExclusionReason.SECONDARY)
        self.assertEqual(exclusion_reason(make_record(1, is_qc_fail=True)), ExclusionReason.QC_FAIL)
        self.assertIsNone(exclusion_reason(make_record(1)))

    def test_no_sequence_is_unmapped(self):
        record = make_record(1)
        record.sequence = None
        self.assertEqual(exclusion_reason(record), ExclusionReason.UNMAPPED)


class TestResolveKeys(unittest.TestCase):

    def test_all_levels(self):
        keys, routes = resolve_keys(ALL_LEVELS, READ_GROUPS)
        self.assertEqual(keys, [
            ALL_READS_KEY,
            _key("SAMPLE", "S1"), _key("LIBRARY", "L1"), _key("READ_GROUP", "rg1"),
            _key("LIBRARY", "L2"), _key("READ_GROUP", "rg2"),
            _key("SAMPLE", "S2"), _key("READ_GROUP", "rg3"),
        ])
        self.assertEqual(routes["rg1"], (0, 1, 2, 3))
        self.assertEqual(routes["rg2"], (0, 1, 4, 5))
        self.assertEqual(routes["rg3"], (0, 6, 2, 7))

    def test_all_reads_only(self):
        keys, routes = resolve_keys({AccumulationLevel.ALL_READS}, READ_GROUPS)
        self.assertEqual(keys, [ALL_READS_KEY])
        self.assertEqual(set(routes.values()), {(0,)})

    def test_all_reads_always_present(self):
        keys, _ = resolve_keys({AccumulationLevel.SAMPLE}, READ_GROUPS)
        self.assertEqual(keys[0], ALL_READS_KEY)
        self.assertEqual(len(keys), 3)

    def test_no_read_groups(self):
        keys, routes = resolve_keys(ALL_LEVELS, [])
        self.assertEqual(keys, [ALL_READS_KEY])
        self.assertEqual(routes, {})

    def test_duplicated_read_group_keeps_first(self):
        read_groups = make_read_groups(("rg1", "S1", "L1"), ("rg1", "S9", "L9"))
        with self.assertLogs("PyRaQC.core.multilevel", level="WARNING"):
            keys, routes = resolve_keys(ALL_LEVELS, read_groups)
        self.assertNotIn(_key("SAMPLE", "S9"), keys)
        self.assertEqual(routes["rg1"], (0, 1, 2, 3))

    def test_read_group_without_sample_or_library(self):
        keys, routes = resolve_keys(ALL_LEVELS, make_read_groups(("rg1", None, None)))
        self.assertEqual(keys, [ALL_READS_KEY, _key("READ_GROUP", "rg1")])
        self.assertEqual(routes["rg1"], (0, 1))


class TestMultiLevelAccumulator(unittest.TestCase):

    def setUp(self):
        self.multilevel = MultiLevelAccumulator.setup(
            ALL_LEVELS, READ_GROUPS, LevelAccumulator, _classifier)

    def _records_seen(self):
        return {str(key): acc.records_seen for key, acc in self.multilevel.finish_all()}

    def test_setup_uses_factory(self):
        factory = Mock(side_effect=partial(LevelAccumulator, coverage_bins=10))
        multilevel = MultiLevelAccumulator.setup(ALL_LEVELS, READ_GROUPS, factory)
        self.assertEqual(factory.call_count, len(multilevel))
        self.assertEqual(len(multilevel), 8)
        self.assertEqual(multilevel.accumulators[0].coverage_bins, 10)

    def test_record_feeds_each_level(self):
        self.multilevel.route(make_record(1, read_group="rg1"))
        seen = self._records_seen()
        self.assertEqual(seen["ALL_READS"], 1)
        self.assertEqual(seen["SAMPLE:S1"], 1)
        self.assertEqual(seen["LIBRARY:L1"], 1)
        self.assertEqual(seen["READ_GROUP:rg1"], 1)
        self.assertEqual(seen["LIBRARY:L2"], 0)

    def test_classified_once(self):
        classifier = Mock(side_effect=_classifier)
        self.multilevel.classifier = classifier
        self.multilevel.route(make_record(1, read_group="rg2"))
        classifier.assert_called_once()

    def test_sample_sums_its_read_groups(self):
        for rg in ("rg1", "rg2", "rg2", "rg3"):
            self.multilevel.route(make_record(1, read_group=rg))
        seen = self._records_seen()
        self.assertEqual(seen["ALL_READS"], 4)
        self.assertEqual(seen["SAMPLE:S1"], 3)
        self.assertEqual(seen["SAMPLE:S2"], 1)
        self.assertEqual(seen["LIBRARY:L1"], 2)
        self.assertEqual(seen["READ_GROUP:rg2"], 2)

    def test_record_without_read_group(self):
        self.multilevel.route(make_record(1))
        seen = self._records_seen()
        self.assertEqual(seen["ALL_READS"], 1)
        self.assertEqual(sum(seen.values()), 1)

    def test_unknown_read_group_warns_once(self):
        with self.assertLogs("PyRaQC.core.multilevel", level="WARNING") as logs:
            self.multilevel.route(make_record(1, read_group="rgX"))
            self.multilevel.route(make_record(2, read_group="rgX"))
        self.assertEqual(len(logs.records), 1)
        seen = self._records_seen()
        self.assertEqual(seen["ALL_READS"], 2)
        self.assertEqual(sum(seen.values()), 2)

    def test_excluded_records_are_not_classified(self):
        classifier = Mock(side_effect=_classifier)
        self.multilevel.classifier = classifier
        result = self.multilevel.route(make_record(1, read_group="rg1", is_duplicate=True))
        classifier.assert_not_called()
        self.assertEqual(result.excluded, ExclusionReason.DUPLICATE)
        finished = dict(self.multilevel.finish_all())
        self.assertEqual(finished[_key("READ_GROUP", "rg1")]
                         .excluded_count(ExclusionReason.DUPLICATE), 1)

    def test_route_without_classifier(self):
        multilevel = MultiLevelAccumulator.setup(ALL_LEVELS, READ_GROUPS, LevelAccumulator)
        with self.assertRaises(ValueError):
            multilevel.route(make_record(1))

    def test_finish_all_order(self):
        keys = [key for key, _ in self.multilevel.finish_all()]
        self.assertEqual([str(k) for k in keys], [
            "ALL_READS", "SAMPLE:S1", "SAMPLE:S2", "LIBRARY:L1", "LIBRARY:L2",
            "READ_GROUP:rg1", "READ_GROUP:rg2", "READ_GROUP:rg3",
        ])

    def test_read_group_without_records(self):
        self.multilevel.route(make_record(1, read_group="rg1"))
        finished = dict(self.multilevel.finish_all())
        empty = finished[_key("READ_GROUP", "rg3")]
        self.assertEqual(empty.records_seen, 0)
        self.assertIsNone(empty.pct_mrna_bases)

    def test_finish_all_twice(self):
        self.multilevel.finish_all()
        with self.assertRaises(AlreadyFinishedError):
            self.multilevel.finish_all()
