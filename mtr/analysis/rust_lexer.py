"""Literal and comment blanking for Rust source text.

The scanner in mtr.analysis.parser works on text where comments, string
literals and char literals are replaced by spaces, so braces and keywords
inside them never count. Newlines are preserved, which keeps every line and
column position valid.
"""

import re
from bisect import bisect_right
from typing import List, Tuple


RAW_STRING_START = re.compile(r'(?:b|c)?r(#*)"')
PREFIXED_STRING_START = re.compile(r'(?:b|c)"')
CHAR_LITERAL = re.compile(
    r"'(?:\\(?:x[0-9a-fA-F]{2}|u\{[0-9a-fA-F_]{1,6}\}|.)|[^\\'\n])'"
)


class LexError(Exception):
    """Raised on unterminated comments or literals"""

    def __init__(self, line: int, reason: str):
        super().__init__(f"line {line}: {reason}")
        self.line = line
        self.reason = reason


def _ident_before(text: str, index: int) -> bool:
    return index > 0 and (text[index - 1].isalnum() or text[index - 1] == "_")


def blank_comments_and_literals(text: str) -> str:
    """Replace comments and literals with spaces, keeping newlines

    Raises:
        LexError: If a block comment or literal is not terminated
    """
    out = list(text)
    n = len(text)
    i = 0
    line = 1

    def blank(start: int, end: int):
        for k in range(start, end):
            if out[k] != "\n":
                out[k] = " "

    while i < n:
        c = text[i]

        if c == "\n":
            line += 1
            i += 1
            continue

        if c == "/" and text.startswith("//", i):
            end = text.find("\n", i)
            end = n if end == -1 else end
            blank(i, end)
            i = end
            continue

        if c == "/" and text.startswith("/*", i):
            depth = 1
            j = i + 2
            while j < n and depth:
                if text.startswith("/*", j):
                    depth += 1
                    j += 2
                elif text.startswith("*/", j):
                    depth -= 1
                    j += 2
                else:
                    j += 1
            if depth:
                raise LexError(line, "unterminated block comment")
            line += text.count("\n", i, j)
            blank(i, j)
            i = j
            continue

        if c in "bcr" and not _ident_before(text, i):
            raw = RAW_STRING_START.match(text, i)
            if raw:
                terminator = '"' + raw.group(1)
                end = text.find(terminator, raw.end())
                if end == -1:
                    raise LexError(line, "unterminated raw string literal")
                end += len(terminator)
                line += text.count("\n", i, end)
                blank(i, end)
                i = end
                continue

            if c == "b" and text.startswith("'", i + 1):
                byte_char = CHAR_LITERAL.match(text, i + 1)
                if byte_char:
                    blank(i, byte_char.end())
                    i = byte_char.end()
                    continue

            if PREFIXED_STRING_START.match(text, i):
                end = _blank_string(text, i, i + 2, blank, line)
                line += text.count("\n", i, end)
                i = end
                continue

        if c == '"':
            end = _blank_string(text, i, i + 1, blank, line)
            line += text.count("\n", i, end)
            i = end
            continue

        if c == "'":
            char = CHAR_LITERAL.match(text, i)
            if char:
                blank(i, char.end())
                i = char.end()
                continue
            # lifetime or loop label

        i += 1

    return "".join(out)


def _blank_string(text: str, start: int, body: int, blank, line: int) -> int:
    n = len(text)
    j = body
    while j < n:
        if text[j] == "\\":
            j += 2
            continue
        if text[j] == '"':
            blank(start, j + 1)
            return j + 1
        j += 1
    raise LexError(line, "unterminated string literal")


class LineIndex:
    """Offset to (line, column) conversion, both 1-based"""

    def __init__(self, text: str):
        self._starts: List[int] = [0]
        for index, char in enumerate(text):
            if char == "\n":
                self._starts.append(index + 1)

    def position(self, offset: int) -> Tuple[int, int]:
        line = bisect_right(self._starts, offset)
        return line, offset - self._starts[line - 1] + 1
