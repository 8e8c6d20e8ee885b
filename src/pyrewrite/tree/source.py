"""Line handling for captured source text.

Lines that begin inside a multi-line string token belong to the literal:
they are never dedented or re-indented.
"""

from __future__ import annotations

import io
import tokenize


def string_continuation_rows(text: str) -> set[int]:
    """1-based rows of ``text`` that start inside a multi-line token.

    Text that does not tokenize (an arbitrary caller fragment) has no such rows.
    """
    rows: set[int] = set()
    try:
        for token in tokenize.generate_tokens(io.StringIO(text).readline):
            if token.end[0] > token.start[0]:
                rows.update(range(token.start[0] + 1, token.end[0] + 1))
    except (tokenize.TokenError, SyntaxError):
        return set()
    return rows


def dedent_lines(lines: list[str], prefix: str, keep: set[int], first_row: int = 1) -> str:
    """Strip exactly ``prefix`` from every line after the first, except rows in ``keep``."""
    out = [lines[0]] if lines else []
    for row, line in enumerate(lines[1:], start=first_row + 1):
        if row not in keep and line.startswith(prefix):
            line = line[len(prefix) :]
        out.append(line)
    return "\n".join(out)


def indent_source(text: str, pad: str) -> list[str]:
    """Prefix each logical line of ``text`` with ``pad``; string interiors stay byte-identical."""
    keep = string_continuation_rows(text)
    lines = []
    for row, line in enumerate(text.split("\n"), start=1):
        if row in keep:
            lines.append(line)
        elif line.strip():
            lines.append(pad + line)
        else:
            lines.append("")
    return lines
