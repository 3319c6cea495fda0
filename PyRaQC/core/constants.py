"""Default thresholds and fixed sizes used throughout PyRaQC.

Values mirror the defaults of the command-line tools so that the core can
be driven directly from Python with the same behaviour.
"""

# RNA-seq defaults
MINIMUM_TRANSCRIPT_LENGTH = 500
"""int: Transcripts shorter than this (in mRNA bases) are not used for exon
classification or coverage statistics."""

RRNA_FRAGMENT_PERCENTAGE = 0.8
"""float: Fraction of a fragment's span that must overlap ribosomal intervals
for the fragment to be counted as rRNA. The comparison is inclusive."""

NORMALIZED_COVERAGE_BINS = 100
"""int: Number of bins the 5' to 3' transcript body is divided into for the
coverage-by-position histogram."""

BIAS_BINS = 5
"""int: Number of terminal normalized bins averaged for 5' and 3' bias."""

# RRBS defaults
MINIMUM_READ_LENGTH = 5
C_QUALITY_THRESHOLD = 20
NEXT_BASE_QUALITY_THRESHOLD = 10
MAX_MISMATCH_RATE = 0.1

CONVERSION_RATE_BINS = 100
"""int: Resolution of the CpG-count-by-conversion-rate histogram. Rates are
rounded to 1 / CONVERSION_RATE_BINS."""

NOT_COMPUTED = "nan"
"""str: Serialized form of a metric that could not be computed."""
