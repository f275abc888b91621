"""mmCIF line tokenizer.

Splits one logical record into fields. A logical record is one physical
line, or several physical lines glued together by the block tracker when
a row wraps or carries a ``;`` text field. Inside such a buffer a text
field is written as ``;<content>\\n;``: the newline in front of the
closing semicolon is the only newline the tokenizer ever sees.
"""

from __future__ import annotations

import logging
from typing import Optional

logger = logging.getLogger(__name__)

_BLANKS = (" ", "\t")


def tokenize_line(line: str, line_no: Optional[int] = None, warn: bool = True) -> list[str]:
    """Return the fields of ``line``, delimiters removed.

    - runs of blanks separate fields
    - ``"..."`` is taken verbatim
    - ``'`` opens a string only after a blank (or at line start) and closes
      only before a blank (or at line end), so ``5'-O`` stays one word
    - ``;`` next to a blank opens a text field that ends at ``\\n;``
    """
    items: list[str] = []
    buf: list[str] = []
    started = False  # a quoted token may legitimately be empty
    in_single = in_double = in_text = False
    n = len(line)

    for i, ch in enumerate(line):
        if in_text:
            if ch == ";" and i > 0 and line[i - 1] == "\n":
                in_text = False
            elif ch != "\n":
                buf.append(ch)
            continue

        if in_double:
            if ch == '"':
                in_double = False
            else:
                buf.append(ch)
            continue

        prev_ch = line[i - 1] if i > 0 else " "
        next_ch = line[i + 1] if i < n - 1 else " "

        if in_single:
            if ch == "'" and next_ch in _BLANKS:
                in_single = False
            else:
                buf.append(ch)
            continue

        if ch in _BLANKS or ch == "\n":
            if buf or started:
                items.append("".join(buf))
                buf = []
                started = False
        elif ch == '"':
            in_double = True
            started = True
        elif ch == ";" and (prev_ch in _BLANKS or next_ch in _BLANKS):
            in_text = True
            started = True
        elif ch == "'" and prev_ch in _BLANKS:
            in_single = True
            started = True
        else:
            buf.append(ch)

    if buf or started:
        items.append("".join(buf))

    if (in_single or in_double) and warn:
        where = f"line {line_no}" if line_no is not None else "record"
        logger.warning("Unterminated inline string in %s; keeping the partial value.", where)
    return items


def strip_delimiters(value: str) -> str:
    """Strip one pair of enclosing quote or text-field delimiters, once."""
    value = value.strip()
    if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"', ";"):
        value = value[1:-1]
    return value.replace("\n", "")
