# services/reducer.py

"""
Aggregation reducer - folds parsed records into per-category totals
"""

import re
import logging
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, Optional

from csv_aggregator.core.exceptions import ContentError
from csv_aggregator.services.csv_parser import ParsedRecord

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 1000

# Optional sign and ASCII digits only: no blanks, underscores or decimals
_INTEGER_RE = re.compile(r"[+-]?[0-9]+")

# A single count must fit a signed 64-bit integer; running sums are unbounded
COUNT_MIN = -(2 ** 63)
COUNT_MAX = 2 ** 63 - 1
_COUNT_MAX_DIGITS = len(str(COUNT_MAX))


@dataclass
class AggregationResult:
    totals: Dict[str, int] = field(default_factory=dict)
    records_accepted: int = 0

    @property
    def category_count(self) -> int:
        return len(self.totals)


def parse_count(text: str) -> int:
    """Parse a base-10 integer count field, raising ContentError otherwise.

    Values outside the signed 64-bit range are rejected like any other
    unparsable count. Leading zeros are stripped and the digit count checked
    before ``int``, so oversized fields never reach the interpreter's
    int-string conversion limit.
    """
    if not _INTEGER_RE.fullmatch(text):
        raise ContentError(f"invalid count: {text[:32]!r}")

    sign = text[0] if text[0] in "+-" else ""
    digits = text.lstrip("+-").lstrip("0") or "0"
    if len(digits) > _COUNT_MAX_DIGITS:
        raise ContentError(f"count out of range: {text[:32]!r}")

    value = int(sign + digits)
    if not COUNT_MIN <= value <= COUNT_MAX:
        raise ContentError(f"count out of range: {text!r}")
    return value


def aggregate(
        records: Iterable[ParsedRecord],
        batch_size: int = DEFAULT_BATCH_SIZE,
        on_checkpoint: Optional[Callable[[int], None]] = None
) -> AggregationResult:
    """Sum counts per category in a single pass over ``records``.

    Records whose count does not parse are dropped and not counted. After
    every ``batch_size`` accepted records ``on_checkpoint`` is called with the
    running accepted count; anything it raises aborts the fold. Sums are
    Python ints, so they are exact for any input size.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")

    result = AggregationResult()
    totals = result.totals
    dropped = 0

    for record in records:
        try:
            count = parse_count(record.count)
        except ContentError:
            dropped += 1
            continue

        totals[record.category] = totals.get(record.category, 0) + count
        result.records_accepted += 1

        if on_checkpoint is not None and result.records_accepted % batch_size == 0:
            on_checkpoint(result.records_accepted)

    if dropped:
        logger.debug(f"Dropped {dropped} records with unparsable counts")

    return result
