"""Integration tests for PDF figure output."""

from pathlib import Path
from unittest.mock import patch

import pytest

from PyRaQC import rnaseq, rrbs
from PyRaQC.interfaces.output import Histogram, MetricsReport
from tests.utils.test_data_generator import (
    make_read_groups, make_transcript, write_bam, write_fasta, write_refflat
)


@pytest.mark.plot
class TestFigureOutput:

    def test_rnaseq_plot(self, tmp_path):
        reads = [dict(name="r{}".format(i), start=start, bases="A" * 50)
                 for i, start in enumerate(range(1, 1000, 100))]
        bam = write_bam(tmp_path / "sample.bam", reads)
        refflat = write_refflat(tmp_path / "genes.refFlat",
                                [make_transcript(1, [(1, 1000)], cds=(101, 900))])
        outdir = tmp_path / "out"

        args = rnaseq._parse_args([str(bam), "-a", str(refflat), "--disable-progress",
                                   "-o", str(outdir)])
        assert rnaseq.run(args) == 0
        pdf = outdir / ("sample" + rnaseq.PLOTFILE_SUFFIX)
        assert pdf.exists()
        assert pdf.stat().st_size > 0

    def test_rrbs_plot(self, tmp_path):
        reads = [dict(name="r{}".format(i), start=1, bases="ATGTTAGCGA") for i in range(3)]
        bam = write_bam(tmp_path / "rrbs.bam", reads, sequences=(("chr1", 100),))
        fasta = write_fasta(tmp_path / "ref.fa", [("chr1", "ACGTCAGCGA" + "T" * 90)])
        outdir = tmp_path / "out"

        args = rrbs._parse_args([str(bam), "-R", str(fasta), "--disable-progress",
                                 "-o", str(outdir)])
        assert rrbs.run(args) == 0
        assert (outdir / ("rrbs" + rrbs.PLOTFILE_SUFFIX)).exists()

    def test_no_reads_skip_plotting(self, tmp_path):
        bam = write_bam(tmp_path / "empty.bam", [])
        refflat = write_refflat(tmp_path / "genes.refFlat",
                                [make_transcript(1, [(1, 1000)], cds=(101, 900))])
        outdir = tmp_path / "out"

        args = rnaseq._parse_args([str(bam), "-a", str(refflat), "--disable-progress",
                                   "-o", str(outdir)])
        assert rnaseq.run(args) == 0
        assert (outdir / "empty.rna_metrics.tab").exists()
        assert not (outdir / ("empty" + rnaseq.PLOTFILE_SUFFIX)).exists()

    def test_single_library_subtitle(self, tmp_path):
        reads = [dict(name="r{}".format(i), start=start, bases="A" * 50, read_group="rg1")
                 for i, start in enumerate(range(1, 1000, 100))]
        bam = write_bam(tmp_path / "sample.bam", reads,
                        read_groups=make_read_groups(("rg1", "S1", "L1")))
        refflat = write_refflat(tmp_path / "genes.refFlat",
                                [make_transcript(1, [(1, 1000)], cds=(101, 900))])

        args = rnaseq._parse_args([str(bam), "-a", str(refflat), "--disable-progress",
                                   "-o", str(tmp_path / "out")])
        with patch("PyRaQC.output.figure.plot_histograms") as plot, \
                patch("PyRaQC.output.figure._feed_pdf_page"):
            assert rnaseq.run(args) == 0
        name, _, _, subtitle = plot.call_args[0]
        assert name == "sample.rna_metrics"
        assert subtitle == "L1"


@pytest.mark.plot
class TestPlotFigures:

    def test_empty_report(self, tmp_path):
        from PyRaQC.output.figure import plot_figures
        report = MetricsReport(histograms=[
            Histogram("coverage_by_position", "ALL_READS", "normalized_position", "coverage",
                      {0: 0, 1: 0})
        ])
        assert plot_figures(tmp_path / "x.pdf", report) is False
        assert not Path(tmp_path / "x.pdf").exists()

    def test_multiple_keys_on_one_page(self, tmp_path):
        from PyRaQC.output.figure import plot_figures
        report = MetricsReport(histograms=[
            Histogram("coverage_by_position", "ALL_READS", "normalized_position", "coverage",
                      {0: 3, 1: 5}),
            Histogram("coverage_by_position", "SAMPLE:S1", "normalized_position", "coverage",
                      {0: 3, 1: 5}),
        ])
        assert plot_figures(tmp_path / "y.pdf", report) is True
        assert (tmp_path / "y.pdf").exists()

    def test_subtitle_in_heading(self):
        import matplotlib.pyplot as plt
        from PyRaQC.output.figure import plot_histograms
        histogram = Histogram("coverage_by_position", "ALL_READS", "normalized_position",
                              "coverage", {0: 3, 1: 5})
        plot_histograms("sample", [histogram], "Coverage", "L1")
        assert plt.gca().get_title() == "Coverage\nsample\nL1"
        plt.close()
