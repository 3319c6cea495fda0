"""Tests for the record classification strategies."""
import pickle
import unittest
from collections import Counter

from PyRaQC.core.classifier import (
    ClassifierKind, MethylationContext, RibosomalContext, RnaSeqContext,
    TranscriptContext, classify_methylation, classify_ribosomal, classify_rnaseq,
    classify_transcript, count_mismatches, effective_negative_strand,
    fragment_span, is_ribosomal, make_classifier, requires_reference
)
from PyRaQC.core.interval import IntervalIndex
from PyRaQC.core.models import MethylationCall, MethylationGate, RegionCategory, StrandAgreement
from PyRaQC.interfaces.config import OverlapTieBreak, RnaSeqConfig, StrandSpecificity
from tests.utils.test_data_generator import (
    make_gene_index, make_interval_index, make_record, make_transcript, make_window
)

# length 1000, CDS 1101-2500
TX = make_transcript(1001, [(1001, 1400), (2001, 2600)], cds=(1101, 2500))
# minus strand, non-coding, length 1000
TX_MINUS = make_transcript(1301, [(1301, 1500), (1601, 2400)], strand="-", name="txB")

FIRST = StrandSpecificity.FIRST_READ_TRANSCRIPTION_STRAND
SECOND = StrandSpecificity.SECOND_READ_TRANSCRIPTION_STRAND


def _context(transcripts=(TX,), **kwargs):
    return TranscriptContext(genes=make_gene_index(transcripts), **kwargs)


class TestRegionClassification(unittest.TestCase):

    def test_exon_and_intron(self):
        result = classify_transcript(make_record(1351, 100), None, _context())
        self.assertEqual(result.aligned_bases, 100)
        self.assertEqual(result.region_bases,
                         {RegionCategory.CODING: 50, RegionCategory.INTRONIC: 50})
        self.assertEqual(result.counted_bases, result.aligned_bases)

    def test_utr_and_intergenic(self):
        result = classify_transcript(make_record(2551, 100), None, _context())
        self.assertEqual(result.region_bases,
                         {RegionCategory.UTR: 50, RegionCategory.INTERGENIC: 50})

    def test_five_prime_utr(self):
        result = classify_transcript(make_record(1001, 50), None, _context())
        self.assertEqual(result.region_bases, {RegionCategory.UTR: 50})

    def test_no_transcripts(self):
        result = classify_transcript(make_record(5001, 50), None, _context())
        self.assertEqual(result.region_bases, {RegionCategory.INTERGENIC: 50})
        self.assertEqual(result.coverage_bins, ())
        self.assertEqual(result.strand, StrandAgreement.UNDETERMINED)

    def test_spliced_read(self):
        record = make_record(1391, blocks=[(1391, 10), (2001, 10)])
        result = classify_transcript(record, None, _context())
        self.assertEqual(result.aligned_bases, 20)
        self.assertEqual(result.region_bases, {RegionCategory.CODING: 20})
        self.assertEqual(Counter(result.coverage_bins), {39: 10, 40: 10})

    def test_coverage_bins(self):
        result = classify_transcript(make_record(1351, 100), None, _context())
        self.assertEqual(Counter(result.coverage_bins), {b: 10 for b in range(35, 40)})

    def test_short_transcript_exons_count_as_intronic(self):
        context = _context(minimum_transcript_length=2000)
        result = classify_transcript(make_record(1001, 50), None, context)
        self.assertEqual(result.region_bases, {RegionCategory.INTRONIC: 50})
        self.assertEqual(result.coverage_bins, ())

    def test_ignored_sequence(self):
        context = _context(ignored_sequences=frozenset({"chrM"}))
        result = classify_transcript(make_record(1, 50, sequence="chrM"), None, context)
        self.assertEqual(result.ignored_bases, 50)
        self.assertTrue(result.ignored_read)
        self.assertEqual(result.region_bases, {})
        self.assertEqual(result.counted_bases, 50)

    def test_overlapping_transcripts_take_highest_category(self):
        result = classify_transcript(make_record(1401, 50), None, _context((TX, TX_MINUS)))
        self.assertEqual(result.region_bases, {RegionCategory.UTR: 50})


class TestStrandAgreement(unittest.TestCase):

    def test_effective_strand(self):
        forward = make_record(1, 10)
        reverse = make_record(1, 10, is_reverse=True)
        read2 = make_record(1, 10, is_paired=True, is_read2=True)
        self.assertIsNone(effective_negative_strand(forward, StrandSpecificity.NONE))
        self.assertFalse(effective_negative_strand(forward, FIRST))
        self.assertTrue(effective_negative_strand(reverse, FIRST))
        self.assertTrue(effective_negative_strand(read2, FIRST))
        self.assertTrue(effective_negative_strand(forward, SECOND))
        self.assertFalse(effective_negative_strand(reverse, SECOND))

    def test_unstranded_library(self):
        result = classify_transcript(make_record(1351, 50), None, _context())
        self.assertEqual(result.strand, StrandAgreement.UNDETERMINED)

    def test_correct_and_incorrect(self):
        context = _context(strand_specificity=FIRST)
        self.assertEqual(classify_transcript(make_record(1351, 50), None, context).strand,
                         StrandAgreement.CORRECT)
        self.assertEqual(
            classify_transcript(make_record(1351, 50, is_reverse=True), None, context).strand,
            StrandAgreement.INCORRECT)

    def test_second_read_protocol(self):
        context = _context(strand_specificity=SECOND)
        self.assertEqual(
            classify_transcript(make_record(1351, 50, is_reverse=True), None, context).strand,
            StrandAgreement.CORRECT)

    def test_transcripts_on_both_strands(self):
        context = _context((TX, TX_MINUS), strand_specificity=FIRST)
        result = classify_transcript(make_record(1401, 50), None, context)
        self.assertEqual(result.strand, StrandAgreement.AMBIGUOUS)


class TestTieBreak(unittest.TestCase):

    def test_priority(self):
        context = _context((TX, TX_MINUS), strand_specificity=FIRST,
                           tie_break=OverlapTieBreak.PRIORITY)
        result = classify_transcript(make_record(1401, 50), None, context)
        self.assertEqual(result.region_bases, {RegionCategory.UTR: 50})
        self.assertEqual(len(result.coverage_bins), 50)

    def test_effective_strand(self):
        context = _context((TX, TX_MINUS), strand_specificity=FIRST,
                           tie_break=OverlapTieBreak.EFFECTIVE_STRAND)
        result = classify_transcript(make_record(1401, 50), None, context)
        self.assertEqual(result.region_bases, {RegionCategory.INTRONIC: 50})
        self.assertEqual(result.coverage_bins, ())

    def test_effective_strand_without_strand_protocol(self):
        context = _context((TX, TX_MINUS), tie_break=OverlapTieBreak.EFFECTIVE_STRAND)
        result = classify_transcript(make_record(1401, 50), None, context)
        self.assertEqual(result.region_bases, {RegionCategory.UTR: 50})


class TestRibosomal(unittest.TestCase):

    def _paired(self, start, mate_start, tlen, mate_sequence="chr1"):
        return make_record(start, 50, is_paired=True, mate_unmapped=False,
                           mate_sequence=mate_sequence, mate_start=mate_start,
                           template_length=tlen)

    def test_fragment_span_of_unpaired_read(self):
        self.assertEqual(fragment_span(make_record(100, 50)), (100, 149))

    def test_fragment_span_of_pair(self):
        self.assertEqual(fragment_span(self._paired(100, 300, 250)), (100, 349))
        self.assertEqual(fragment_span(self._paired(300, 100, -250)), (100, 349))

    def test_fragment_span_with_mate_elsewhere(self):
        self.assertEqual(fragment_span(self._paired(100, 300, 0, "chr2")), (100, 149))

    def test_threshold_is_inclusive(self):
        context = RibosomalContext(make_interval_index([(1, 80)]), 0.8)
        self.assertTrue(is_ribosomal(make_record(1, 100), context))

    def test_below_threshold(self):
        context = RibosomalContext(make_interval_index([(1, 79)]), 0.8)
        self.assertFalse(is_ribosomal(make_record(1, 100), context))

    def test_fragment_level_overlap(self):
        context = RibosomalContext(make_interval_index([(150, 349)]), 0.8)
        self.assertTrue(is_ribosomal(self._paired(100, 300, 250), context))
        self.assertFalse(is_ribosomal(make_record(100, 50), context))

    def test_disabled_without_intervals(self):
        self.assertIsNone(is_ribosomal(make_record(1, 100), RibosomalContext()))
        empty = RibosomalContext(IntervalIndex.empty())
        self.assertFalse(empty.enabled)
        self.assertIsNone(classify_ribosomal(make_record(1, 100), None, empty).ribosomal)


class TestRnaSeqClassification(unittest.TestCase):

    def setUp(self):
        config = RnaSeqConfig(ignored_sequences=frozenset({"chrM"}))
        self.context = RnaSeqContext.from_config(
            config, make_gene_index([TX]), make_interval_index([(1001, 1450)]))

    def test_regions_and_rrna(self):
        result = classify_rnaseq(make_record(1351, 100), None, self.context)
        self.assertTrue(result.ribosomal)
        self.assertEqual(result.region_bases,
                         {RegionCategory.CODING: 50, RegionCategory.INTRONIC: 50})

    def test_ignored_read_skips_rrna(self):
        result = classify_rnaseq(make_record(1001, 50, sequence="chrM"), None, self.context)
        self.assertTrue(result.ignored_read)
        self.assertIsNone(result.ribosomal)


REF = "ACGTCAGCGA"


class TestMethylation(unittest.TestCase):

    def setUp(self):
        self.context = MethylationContext()
        self.window = make_window(REF)

    def test_forward_read_calls(self):
        record = make_record(1, 10, bases="ATGTTAGCGA")
        result = classify_methylation(record, self.window, self.context)
        self.assertEqual(result.methylation_gate, MethylationGate.PASSED)
        self.assertEqual(result.methylation_calls, (
            MethylationCall("chr1", 2, True, True),
            MethylationCall("chr1", 5, False, True),
            MethylationCall("chr1", 8, True, False),
        ))

    def test_reverse_read_calls_keyed_on_plus_strand(self):
        record = make_record(1, 10, bases="ACATCAGCAA", is_reverse=True)
        self.assertEqual(count_mismatches(record, self.window), 0)
        result = classify_methylation(record, self.window, self.context)
        self.assertEqual(result.methylation_calls, (
            MethylationCall("chr1", 2, True, True),
            MethylationCall("chr1", 7, False, False),
            MethylationCall("chr1", 8, True, True),
        ))

    def test_low_quality_calls_are_filtered(self):
        quals = [30] * 10
        quals[1] = 10
        quals[8] = 5
        record = make_record(1, 10, bases="ATGTTAGCGA", qualities=quals)
        calls = classify_methylation(record, self.window, self.context).methylation_calls
        self.assertEqual([c.filtered for c in calls], [True, False, True])

    def test_missing_qualities(self):
        record = make_record(1, 10, bases="ATGTTAGCGA")
        record.qualities = None
        calls = classify_methylation(record, self.window, self.context).methylation_calls
        self.assertTrue(all(c.filtered for c in calls))

    def test_last_aligned_base_is_not_called(self):
        record = make_record(1, 8, bases="ACGTCAGC")
        calls = classify_methylation(record, self.window, self.context).methylation_calls
        self.assertEqual([c.position for c in calls], [2, 5])

    def test_other_read_base_is_not_called(self):
        record = make_record(1, 10, bases="ATGTGAGCGA")
        calls = classify_methylation(record, self.window, self.context).methylation_calls
        self.assertEqual([c.position for c in calls], [2, 8])

    def test_too_short(self):
        record = make_record(1, 4, bases="ACGT")
        result = classify_methylation(record, self.window, self.context)
        self.assertEqual(result.methylation_gate, MethylationGate.TOO_SHORT)
        self.assertEqual(result.methylation_calls, ())

    def test_mismatch_rate_limit(self):
        record = make_record(1, 10, bases="ACGACAGCGA")
        self.assertEqual(count_mismatches(record, self.window), 1)
        result = classify_methylation(record, self.window, self.context)
        self.assertEqual(result.methylation_gate, MethylationGate.PASSED)

    def test_too_many_mismatches(self):
        record = make_record(1, 10, bases="AGGACAGCGA")
        result = classify_methylation(record, self.window, self.context)
        self.assertEqual(result.methylation_gate, MethylationGate.TOO_MANY_MISMATCHES)
        self.assertEqual(result.methylation_calls, ())

    def test_missing_reference(self):
        result = classify_methylation(make_record(1, 10), None, self.context)
        self.assertEqual(result.methylation_gate, MethylationGate.MISSING_REFERENCE)
        self.assertTrue(result.reference_missing)


class TestMakeClassifier(unittest.TestCase):

    def test_bound_strategy(self):
        classifier = make_classifier(ClassifierKind.TRANSCRIPT, _context())
        result = classifier(make_record(1351, 100), None)
        self.assertEqual(result.aligned_bases, 100)

    def test_picklable(self):
        classifier = make_classifier(ClassifierKind.RNASEQ, RnaSeqContext.from_config(
            RnaSeqConfig(), make_gene_index([TX]), make_interval_index([(1, 10)])))
        restored = pickle.loads(pickle.dumps(classifier))
        self.assertEqual(restored(make_record(1351, 100), None).region_bases,
                         classifier(make_record(1351, 100), None).region_bases)

    def test_requires_reference(self):
        self.assertTrue(requires_reference(ClassifierKind.METHYLATION))
        self.assertFalse(requires_reference(ClassifierKind.RNASEQ))
