"""Delimited-text field escaping and splitting shared by every log format."""

from __future__ import annotations

import csv
import io
import logging
from collections.abc import Iterable, Iterator

logger = logging.getLogger(__name__)

DELIMITER = ","
QUOTE = '"'
_NEEDS_QUOTING = (DELIMITER, QUOTE, "\n", "\r")


def escape_field(value: str | None) -> str:
    """Quote a field when it contains the delimiter, a quote or a line break."""

    text = value or ""
    if any(char in text for char in _NEEDS_QUOTING):
        return QUOTE + text.replace(QUOTE, QUOTE * 2) + QUOTE
    return text


def join_fields(fields: Iterable[str | None]) -> str:
    """Escape and join fields into one record line."""

    return DELIMITER.join(escape_field(value) for value in fields)


def parse_line(line: str) -> list[str]:
    """Split one record on delimiters outside quoted spans.

    A doubled quote inside a quoted span is a literal quote. Unbalanced quotes
    are kept as literal content; this function never raises.
    """

    try:
        rows = list(csv.reader([line], delimiter=DELIMITER, quotechar=QUOTE, strict=False))
    except csv.Error as exc:
        logger.debug("csv reader rejected line, splitting naively: %s", exc)
        return line.split(DELIMITER)
    if not rows or not rows[0]:
        return [""]
    return rows[0]


def iter_records(text: str) -> Iterator[list[str]]:
    """Yield the field lists of a multi-line blob, honouring quoted line breaks."""

    reader = csv.reader(io.StringIO(text, newline=""), delimiter=DELIMITER, quotechar=QUOTE, strict=False)
    while True:
        try:
            row = next(reader)
        except StopIteration:
            return
        except csv.Error as exc:
            logger.debug("skipping unreadable record near line %s: %s", reader.line_num, exc)
            continue
        if row:
            yield row
