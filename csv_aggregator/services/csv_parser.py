# services/csv_parser.py

"""
Row stream parser - turns a CSV byte stream into sales records lazily
"""

import csv
import io
import sys
import logging
from typing import BinaryIO, Iterator, NamedTuple

from csv_aggregator.core.exceptions import FormatError, StructuralError

logger = logging.getLogger(__name__)

FIELDS_PER_RECORD = 3

# Field length is not a shape error; lift the csv module's 128 KiB default.
# Capped at a C long so the call also works on platforms with 32-bit longs.
FIELD_SIZE_LIMIT = min(sys.maxsize, 2 ** 31 - 1)
csv.field_size_limit(FIELD_SIZE_LIMIT)


class ParsedRecord(NamedTuple):
    category: str
    date: str
    count: str


def iter_records(stream: BinaryIO, encoding: str = "utf-8") -> Iterator[ParsedRecord]:
    """Yield one ParsedRecord per data row of ``stream``.

    The first non-blank row is discarded as a header without looking at its
    contents. Every following row must have exactly three fields: a row of any
    other width raises FormatError, and malformed quoting or undecodable bytes
    raise StructuralError. Blank lines are skipped. The caller keeps ownership
    of ``stream``; it is left open when iteration stops.
    """
    text = io.TextIOWrapper(stream, encoding=encoding, newline="")
    reader = csv.reader(text, strict=True)

    try:
        try:
            header = next(row for row in reader if row)
        except StopIteration:
            raise StructuralError("Failed to read header: EOF") from None
        except (csv.Error, UnicodeDecodeError) as e:
            raise StructuralError(f"Failed to read header: {e}") from e

        logger.debug(f"Discarded header row: {header}")

        while True:
            try:
                row = next(reader)
            except StopIteration:
                return
            except (csv.Error, UnicodeDecodeError) as e:
                raise StructuralError(
                    f"Error reading CSV: line {reader.line_num}: {e}"
                ) from e

            if not row:
                continue
            if len(row) != FIELDS_PER_RECORD:
                raise FormatError(reader.line_num, FIELDS_PER_RECORD, len(row))

            yield ParsedRecord(row[0], row[1], row[2])
    finally:
        text.detach()
