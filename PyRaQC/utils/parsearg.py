"""Command-line argument parsing for the PyRaQC entry points.

Parsers:
- get_rnaseq_parser(): pyraqc-rnaseq
- get_rrbs_parser(): pyraqc-rrbs

Range checks of analysis parameters are left to RnaSeqConfig / RrbsConfig
so that every violation is reported at once.
"""
import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Optional, Sequence, Union

import PyRaQC
from PyRaQC.core import constants
from PyRaQC.core.models import AccumulationLevel
from PyRaQC.interfaces.config import OverlapTieBreak, StrandSpecificity

ACCUMULATION_LEVELS = tuple(level.value for level in AccumulationLevel)
STRAND_SPECIFICITIES = tuple(s.value for s in StrandSpecificity)
TIE_BREAKS = tuple(t.value for t in OverlapTieBreak)


def _make_upper(s: str) -> str:
    return s.upper()


class StoreLoggingLevel(argparse.Action):
    """Store a logging level name as its logging module constant."""
    def __call__(
        self,
        parser: argparse.ArgumentParser,
        namespace: argparse.Namespace,
        values: Union[Any, Sequence[Any], None],
        option_string: Optional[str] = None
    ) -> None:
        assert isinstance(values, str), "Logging level must be a string"
        setattr(namespace, self.dest, getattr(logging, values))


class ForceNaturalNumber(argparse.Action):
    """Reject integers smaller than 1."""
    def __call__(
        self,
        parser: argparse.ArgumentParser,
        namespace: argparse.Namespace,
        values: Union[Any, Sequence[Any], None],
        option_string: Optional[str] = None
    ) -> None:
        assert isinstance(values, int), "Argument must be an integer"
        if values < 1:
            parser.error("argument {} must be > 0.".format('/'.join(self.option_strings)))
        setattr(namespace, self.dest, values)


class ToColorizeOption(argparse.Action):
    """Map TRUE / FALSE / AUTO to a colorize flag. AUTO follows stderr."""
    def __call__(
        self,
        parser: argparse.ArgumentParser,
        namespace: argparse.Namespace,
        values: Union[Any, Sequence[Any], None],
        option_string: Optional[str] = None
    ) -> None:
        assert isinstance(values, str), "Colorization option must be a string"
        if values == "TRUE":
            colorize = True
        elif values == "FALSE":
            colorize = False
        else:
            colorize = sys.stderr.isatty()
        setattr(namespace, self.dest, colorize)


def add_common_args(parser: argparse.ArgumentParser) -> None:
    """Logging, progress and version options shared by every tool."""
    parser.add_argument(
        "-v", "--log-level", type=_make_upper, default=logging.INFO,
        action=StoreLoggingLevel, choices=("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"),
        help="Set verbosity. (Default: INFO)"
    )
    parser.add_argument(
        "--disable-progress", action="store_true",
        help="Disable progress bar"
    )
    parser.add_argument(
        "--color", type=_make_upper, default=sys.stderr.isatty(), action=ToColorizeOption,
        choices=("TRUE", "FALSE", "AUTO"),
        help="Coloring log. (Default: auto)"
    )
    parser.add_argument(
        "--version", action="version", version="PyRaQC " + PyRaQC.VERSION
    )


def add_processing_args(group: argparse._ArgumentGroup) -> None:
    group.add_argument(
        "-p", "--process", type=int, default=1, action=ForceNaturalNumber,
        help="Number of classification worker processes. (Default: 1)"
    )
    group.add_argument(
        "--skip-plots", action="store_true",
        help="Skip output figures."
    )
    group.add_argument(
        "--assume-sorted", action="store_true",
        help="Process input whose header does not declare coordinate sort order "
             "instead of rejecting it."
    )


def add_level_args(group: argparse._ArgumentGroup) -> None:
    group.add_argument(
        "--level", nargs='+', type=_make_upper, choices=ACCUMULATION_LEVELS,
        default=[AccumulationLevel.ALL_READS.value],
        help="Accumulation levels to report metrics at. ALL_READS is always reported. "
             "(Default: ALL_READS)"
    )


def add_reads_arg(group: argparse._ArgumentGroup) -> None:
    group.add_argument(
        "reads", type=Path,
        help="SAM/BAM format mapped reads. Input should be sorted by coordinate."
    )


def add_output_args(group: argparse._ArgumentGroup) -> None:
    group.add_argument(
        "-n", "--name",
        help="Output file base name. (Default: input file name without extension)"
    )
    group.add_argument(
        "-o", "--outdir", default='.', type=Path,
        help="Output directory. (Default: current directory)"
    )


def get_rnaseq_parser() -> argparse.ArgumentParser:
    """Create the pyraqc-rnaseq argument parser."""
    parser = argparse.ArgumentParser(
        description="Collect RNA-seq alignment metrics: distribution of bases over "
                    "coding, UTR, intronic and intergenic regions,\nrRNA content, "
                    "strand agreement and coverage along transcripts.",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    add_common_args(parser)

    proc_args = parser.add_argument_group("Processing behaviors")
    add_processing_args(proc_args)

    input_args = parser.add_argument_group("Input file arguments")
    add_reads_arg(input_args)
    input_args.add_argument(
        "-a", "--ref-flat", required=True, type=Path,
        help="Gene annotations in refFlat format."
    )
    input_args.add_argument(
        "-r", "--ribosomal-intervals", type=Path,
        help="Location of rRNA sequences in interval_list format. "
             "If not given, rRNA metrics are reported as not computed."
    )

    params = parser.add_argument_group("Metric parameters")
    params.add_argument(
        "-s", "--strand-specificity", type=_make_upper, default=StrandSpecificity.NONE.value,
        choices=STRAND_SPECIFICITIES,
        help="For strand-specific libraries, the strand the first or second read "
             "corresponds to. (Default: NONE)"
    )
    params.add_argument(
        "--minimum-length", type=int, default=constants.MINIMUM_TRANSCRIPT_LENGTH,
        help="Transcripts shorter than this are not used for exonic bases and coverage "
             "statistics. (Default: {})".format(constants.MINIMUM_TRANSCRIPT_LENGTH)
    )
    params.add_argument(
        "--rrna-fragment-percentage", type=float, default=constants.RRNA_FRAGMENT_PERCENTAGE,
        help="Fraction of a fragment that must overlap rRNA intervals to be counted "
             "as rRNA. (Default: {})".format(constants.RRNA_FRAGMENT_PERCENTAGE)
    )
    params.add_argument(
        "--ignore-sequence", action="append", metavar="SEQUENCE",
        help="Bases of reads on this sequence are counted as ignored. "
             "Can be specified multiple times."
    )
    params.add_argument(
        "--tie-break", type=_make_upper, default=OverlapTieBreak.PRIORITY.value,
        choices=TIE_BREAKS,
        help="How bases covered by transcripts on both strands are classified. "
             "(Default: PRIORITY)"
    )
    params.add_argument(
        "--coverage-bins", type=int, default=constants.NORMALIZED_COVERAGE_BINS,
        help="Number of normalized positions along transcripts. "
             "(Default: {})".format(constants.NORMALIZED_COVERAGE_BINS)
    )
    params.add_argument(
        "--bias-bins", type=int, default=constants.BIAS_BINS,
        help="Number of terminal positions averaged for 5' and 3' bias. "
             "(Default: {})".format(constants.BIAS_BINS)
    )
    add_level_args(params)

    output = parser.add_argument_group("Output file arguments")
    add_output_args(output)

    return parser


def get_rrbs_parser() -> argparse.ArgumentParser:
    """Create the pyraqc-rrbs argument parser."""
    parser = argparse.ArgumentParser(
        description="Collect bisulfite conversion metrics of RRBS alignments "
                    "for CpG and non-CpG cytosines.",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    add_common_args(parser)

    proc_args = parser.add_argument_group("Processing behaviors")
    add_processing_args(proc_args)

    input_args = parser.add_argument_group("Input file arguments")
    add_reads_arg(input_args)
    input_args.add_argument(
        "-R", "--reference", required=True, type=Path,
        help="Indexed FASTA reference the reads were aligned to."
    )

    params = parser.add_argument_group("Metric parameters")
    params.add_argument(
        "--minimum-read-length", type=int, default=constants.MINIMUM_READ_LENGTH,
        help="Reads shorter than this are not used. "
             "(Default: {})".format(constants.MINIMUM_READ_LENGTH)
    )
    params.add_argument(
        "--c-quality-threshold", type=int, default=constants.C_QUALITY_THRESHOLD,
        help="Minimum base quality of a called cytosine. "
             "(Default: {})".format(constants.C_QUALITY_THRESHOLD)
    )
    params.add_argument(
        "--next-base-quality-threshold", type=int, default=constants.NEXT_BASE_QUALITY_THRESHOLD,
        help="Minimum base quality of the base following a called cytosine. "
             "(Default: {})".format(constants.NEXT_BASE_QUALITY_THRESHOLD)
    )
    params.add_argument(
        "--max-mismatch-rate", type=float, default=constants.MAX_MISMATCH_RATE,
        help="Reads whose non-bisulfite mismatch rate exceeds this are discarded. "
             "(Default: {})".format(constants.MAX_MISMATCH_RATE)
    )
    params.add_argument(
        "--sequence-names", nargs='+', metavar="SEQUENCE",
        help="Only consider reads on these sequences. (Default: all)"
    )
    add_level_args(params)

    output = parser.add_argument_group("Output file arguments")
    add_output_args(output)

    return parser
