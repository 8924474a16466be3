# core/exceptions.py

"""
Error taxonomy for aggregation jobs.

Every error except ContentError is terminal for the job that raised it: the
worker records ``str(exc)`` as the job's error message and nothing is retried.
ContentError never leaves the reducer, which drops the offending record.
"""


class AggregatorError(Exception):
    """Base class for all aggregation engine errors"""


class AccessError(AggregatorError):
    """The input file could not be opened"""


class StructuralError(AggregatorError):
    """The header could not be read or the CSV stream is malformed"""


class FormatError(StructuralError):
    """A data row does not have the expected number of fields"""

    def __init__(self, line: int, expected: int, actual: int):
        self.line = line
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Error reading CSV: record on line {line}: wrong number of fields "
            f"(expected {expected}, got {actual})"
        )


class ContentError(AggregatorError):
    """A field that should hold an integer does not"""


class WriteError(AggregatorError):
    """The result artifact could not be persisted"""


class JobCancelledError(AggregatorError):
    """The job was cancelled while queued or between batches"""

    def __init__(self, message: str = "Job cancelled"):
        super().__init__(message)


class CapacityError(AggregatorError):
    """The worker pool and its queue are full"""
