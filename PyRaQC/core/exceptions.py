"""Exceptions for PyRaQC metric collection.

Four families are distinguished by how a run reacts to them:

- SetupError: malformed annotation input. Aborts before any record is read.
- ConfigError: out-of-range option values. Aborts before any record is read.
- RecordError: a single record cannot be fully classified. Counted, never
  interrupts the stream.
- StateError: an accumulator was driven out of order. Always a bug.
"""


class PyRaQCError(Exception):
    """Base class of all PyRaQC specific errors."""
    pass


class SetupError(PyRaQCError):
    """Raised when annotation inputs cannot be turned into an index."""
    pass


class MalformedIntervalError(SetupError):
    """Raised when an interval has start > end."""
    pass


class UnknownSequenceError(MalformedIntervalError):
    """Raised when an interval names a sequence absent from the reference
    sequence dictionary."""
    pass


class AnnotationFormatError(SetupError):
    """Raised when a refFlat or interval_list line cannot be parsed."""
    pass


class ConfigError(PyRaQCError, ValueError):
    """Raised when configuration values are out of range.

    Attributes:
        problems: Every violated constraint, one message each.
    """

    def __init__(self, problems):
        self.problems = list(problems)
        super().__init__("; ".join(self.problems))


class RecordError(PyRaQCError):
    """Base class of recoverable, per-record failures."""
    pass


class MissingReferenceSequenceError(RecordError, KeyError):
    """Raised when reference bases are unavailable for a record."""

    def __init__(self, sequence: str):
        self.sequence = sequence
        super().__init__(sequence)

    def __str__(self) -> str:
        return "Reference sequence '{}' is not available".format(self.sequence)


class StateError(PyRaQCError, RuntimeError):
    """Base class of accumulator lifecycle violations."""
    pass


class AlreadyFinishedError(StateError):
    """Raised when finish() is called on a finished accumulator."""
    pass


class AccumulatorClosedError(StateError):
    """Raised when ingest() is called on a finished accumulator."""
    pass
