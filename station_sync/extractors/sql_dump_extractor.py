"""Extractor for MySQL data dumps made of INSERT statements."""

import logging
import re
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .base import BaseExtractor
from ..errors import DumpParseError
from ..models.record import DumpFile, ParsedInsert, SourceRow, truncate_snippet

logger = logging.getLogger(__name__)

_INSERT_RE = re.compile(
    r"^(?:INSERT|REPLACE)\s+(?:IGNORE\s+)?(?:INTO\s+)?"
    r"(?:`?\w+`?\.)?`?(?P<table>\w+)`?\s*"
    r"(?:\((?P<columns>[^)]*)\)\s*)?"
    r"VALUES\s*",
    re.IGNORECASE | re.DOTALL,
)
_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?(?:[eE][-+]?\d+)?")
_WORD_RE = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
_HEX_RE = re.compile(r"[xX]'([0-9A-Fa-f]*)'|0x([0-9A-Fa-f]+)")

_ESCAPES = {
    "0": "\x00",
    "b": "\b",
    "n": "\n",
    "r": "\r",
    "t": "\t",
    "Z": "\x1a",
    "\\": "\\",
    "'": "'",
    '"': '"',
    # MySQL keeps the backslash for pattern characters.
    "%": "\\%",
    "_": "\\_",
}


def split_statements(text: str) -> Iterator[str]:
    """
    Split SQL text into statements on semicolons.

    Semicolons inside quoted strings and identifiers are kept. Comments
    (-- ..., # ..., /* ... */) are removed, including MySQL
    version comments.
    """
    statement: List[str] = []
    quote: Optional[str] = None
    i = 0
    n = len(text)

    while i < n:
        ch = text[i]

        if quote:
            statement.append(ch)
            if ch == "\\" and quote != "`" and i + 1 < n:
                statement.append(text[i + 1])
                i += 2
                continue
            if ch == quote:
                if i + 1 < n and text[i + 1] == quote:
                    statement.append(quote)
                    i += 2
                    continue
                quote = None
            i += 1
            continue

        if ch in ("'", '"', "`"):
            quote = ch
            statement.append(ch)
            i += 1
        elif ch == "#" or (ch == "-" and text[i:i + 2] == "--" and (i + 2 >= n or text[i + 2].isspace())):
            end = text.find("\n", i)
            i = n if end == -1 else end + 1
            statement.append("\n")
        elif ch == "/" and text[i:i + 2] == "/*":
            end = text.find("*/", i + 2)
            i = n if end == -1 else end + 2
            statement.append(" ")
        elif ch == ";":
            stmt = "".join(statement).strip()
            if stmt:
                yield stmt
            statement = []
            i += 1
        else:
            statement.append(ch)
            i += 1

    if quote:
        raise DumpParseError(f"Unterminated quoted value near: {truncate_snippet(''.join(statement))}")

    tail = "".join(statement).strip()
    if tail:
        yield tail


def _skip_ws(text: str, pos: int) -> int:
    while pos < len(text) and text[pos].isspace():
        pos += 1
    return pos


def _parse_string(text: str, pos: int) -> Tuple[str, int]:
    quote = text[pos]
    pos += 1
    chars: List[str] = []
    while pos < len(text):
        ch = text[pos]
        if ch == "\\" and pos + 1 < len(text):
            nxt = text[pos + 1]
            chars.append(_ESCAPES.get(nxt, nxt))
            pos += 2
        elif ch == quote:
            if pos + 1 < len(text) and text[pos + 1] == quote:
                chars.append(quote)
                pos += 2
            else:
                return "".join(chars), pos + 1
        else:
            chars.append(ch)
            pos += 1
    raise DumpParseError("Unterminated string literal")


def _parse_literal(text: str, pos: int) -> Tuple[Any, int]:
    if pos >= len(text):
        raise DumpParseError("Unexpected end of VALUES list")

    ch = text[pos]
    if ch in ("'", '"'):
        return _parse_string(text, pos)

    match = _HEX_RE.match(text, pos)
    if match:
        digits = match.group(1) if match.group(1) is not None else match.group(2)
        return bytes.fromhex(digits), match.end()

    match = _NUMBER_RE.match(text, pos)
    if match:
        token = match.group(0)
        if any(c in token for c in ".eE"):
            return Decimal(token), match.end()
        return int(token), match.end()

    match = _WORD_RE.match(text, pos)
    if match:
        word = match.group(0)
        upper = word.upper()
        end = match.end()
        if upper == "NULL":
            return None, end
        if upper == "TRUE":
            return True, end
        if upper == "FALSE":
            return False, end
        # Charset introducer, e.g. _utf8mb4'text'
        if word.startswith("_") and end < len(text) and text[end] in ("'", '"'):
            return _parse_string(text, end)
        raise DumpParseError(f"Unsupported value expression: {word}")

    raise DumpParseError(f"Unexpected character {ch!r} in VALUES list")


def parse_values(text: str) -> List[List[Any]]:
    """Parse "(v1, v2), (v3, v4)" into lists of Python values."""
    rows: List[List[Any]] = []
    pos = _skip_ws(text, 0)

    while pos < len(text):
        if text[pos] != "(":
            raise DumpParseError(f"Expected '(' but found {truncate_snippet(text[pos:], 20)!r}")
        pos += 1
        values: List[Any] = []
        while True:
            pos = _skip_ws(text, pos)
            value, pos = _parse_literal(text, pos)
            values.append(value)
            pos = _skip_ws(text, pos)
            if pos >= len(text):
                raise DumpParseError("Unterminated row in VALUES list")
            if text[pos] == ",":
                pos += 1
            elif text[pos] == ")":
                pos += 1
                break
            else:
                raise DumpParseError(f"Unexpected character {text[pos]!r} in row")
        rows.append(values)

        pos = _skip_ws(text, pos)
        if pos < len(text) and text[pos] == ",":
            pos = _skip_ws(text, pos + 1)
            continue
        if pos < len(text):
            raise DumpParseError(f"Unsupported trailing clause: {truncate_snippet(text[pos:])}")

    return rows


def parse_insert(statement: str, index: int = 0) -> Optional[ParsedInsert]:
    """
    Parse one INSERT statement.

    Returns None for statements that are not INSERTs. Raises
    DumpParseError when an INSERT has no column list or malformed values.
    """
    match = _INSERT_RE.match(statement)
    if not match:
        return None

    table = match.group("table")
    if match.group("columns") is None:
        raise DumpParseError(f"INSERT into {table} has no column list")

    columns = [c.strip().strip("`").strip() for c in match.group("columns").split(",")]
    rows = []
    for values in parse_values(statement[match.end():]):
        if len(values) != len(columns):
            raise DumpParseError(
                f"INSERT into {table} has {len(values)} values for {len(columns)} columns"
            )
        rows.append(dict(zip(columns, values)))

    return ParsedInsert(table=table, columns=columns, rows=rows, statement_index=index)


def parse_dump(text: str, path: str = "<string>") -> DumpFile:
    """Parse every INSERT statement in a dump; other statements are ignored."""
    dump = DumpFile(path=path)
    for index, statement in enumerate(split_statements(text)):
        if not re.match(r"^(INSERT|REPLACE)\b", statement, re.IGNORECASE):
            continue
        try:
            parsed = parse_insert(statement, index)
        except DumpParseError as e:
            logger.warning(f"Skipping statement {index}: {e}")
            dump.skipped_statements.append(truncate_snippet(statement))
            continue
        if parsed:
            dump.inserts.append(parsed)
    return dump


class SqlDumpExtractor(BaseExtractor):
    """
    Reads rows out of a MySQL data dump file.

    The file is parsed once, on first access.
    """

    def __init__(self, path: str, batch_size: int = 1000, encoding: str = "utf-8"):
        super().__init__("mysql-dump", batch_size=batch_size)
        self.path = path
        self.encoding = encoding
        self._dump: Optional[DumpFile] = None
        self._rows: Dict[str, List[SourceRow]] = {}

    def read(self) -> DumpFile:
        """Parse the dump file."""
        if self._dump is None:
            file_path = Path(self.path)
            if not file_path.exists():
                raise FileNotFoundError(f"Data file not found: {self.path}")
            logger.info(f"Reading MySQL data file {file_path}")
            self._dump = parse_dump(file_path.read_text(encoding=self.encoding), str(file_path))
            self._rows = self._dump.rows_by_table()
            logger.info(
                f"Found {len(self._dump.inserts)} INSERT statements for {len(self._rows)} tables"
            )
        return self._dump

    @property
    def tables(self) -> List[str]:
        self.read()
        return list(self._rows.keys())

    def extract_batch(self, table: str, offset: int = 0, limit: int = 1000) -> List[SourceRow]:
        self.read()
        return self._rows.get(table, [])[offset:offset + limit]
