"""Lightweight SQL text analysis for schema probes.

Just enough parsing to find which base table an output column of an
ad-hoc SELECT comes from: the final top-level SELECT, its projection
list, and the tables (with aliases) of its FROM clause. Anything the
helpers cannot read with confidence is reported as unknown.
"""

import re
from dataclasses import dataclass
from typing import Optional

_COMMENT_RE = re.compile(r"--[^\n]*|/\*.*?\*/", re.S)
_IDENT = r'(?:"(?:[^"]|"")+"|\[[^\]]+\]|`[^`]+`|[A-Za-z_][\w$]*)'
_ITEM_RE = re.compile(
    rf"^(?:({_IDENT})\s*\.\s*)?({_IDENT}|\*)(?:\s+(?:AS\s+)?({_IDENT}))?$",
    re.I,
)
_CTE_RE = re.compile(rf"(?:\bWITH(?:\s+RECURSIVE)?|,)\s+({_IDENT})\s+AS\s*\(", re.I)
_CLAUSE_END = {
    "where", "group", "order", "limit", "having", "qualify", "window",
    "union", "intersect", "except", "offset", "fetch",
}
_NOT_ALIAS = _CLAUSE_END | {
    "on", "using", "join", "left", "right", "inner", "outer", "full",
    "cross", "natural", "lateral",
}
# an alias is never a join or clause keyword
_TABLE_RE = re.compile(
    rf"(?:\bFROM|\bJOIN|,)\s+((?:{_IDENT}\s*\.\s*)?{_IDENT})"
    rf"(?:\s+(?:AS\s+)?(?!(?:{'|'.join(sorted(_NOT_ALIAS))})\b)({_IDENT}))?",
    re.I,
)
_LITERAL_RE = re.compile(r"'((?:[^']|'')*)'")


@dataclass(frozen=True)
class SourceTable:
    """A table named in a FROM clause."""

    schema: Optional[str]
    table: str
    alias: Optional[str] = None

    @property
    def key(self) -> str:
        return (self.alias or self.table).lower()


def strip_comments(sql: str) -> str:
    return _COMMENT_RE.sub(" ", sql)


def unquote(ident: str) -> str:
    ident = ident.strip()
    if len(ident) >= 2 and ident[0] in "\"[`":
        inner = ident[1:-1]
        return inner.replace('""', '"') if ident[0] == '"' else inner
    return ident


def flatten(sql: str) -> str:
    """Blank out quoted text and parenthesized content, keeping offsets.

    The result has the same length as ``sql``; characters inside string
    literals and nested parentheses are replaced by spaces so that
    keyword searches only see the top level.
    """
    out = []
    depth = 0
    quote = None
    for char in sql:
        if quote:
            out.append(" ")
            if char == quote:
                quote = None
            continue
        if char == "'":
            quote = char
            out.append(" ")
        elif char == "(":
            depth += 1
            out.append("(" if depth == 1 else " ")
        elif char == ")":
            depth = max(depth - 1, 0)
            out.append(")" if depth == 0 else " ")
        else:
            out.append(char if depth == 0 else " ")
    return "".join(out)


def final_select(sql: str) -> str:
    """Return the last top-level SELECT statement of ``sql``."""
    sql = strip_comments(sql).strip().rstrip(";")
    flat = flatten(sql)
    starts = [m.start() for m in re.finditer(r"\bselect\b", flat, re.I)]
    if not starts:
        return sql
    return sql[starts[-1]:]


def split_top_level(text: str, sep: str = ",") -> list[str]:
    flat = flatten(text)
    parts, start = [], 0
    for index, char in enumerate(flat):
        if char == sep:
            parts.append(text[start:index])
            start = index + 1
    parts.append(text[start:])
    return [part.strip() for part in parts if part.strip()]


def _keyword_at(flat: str, keyword: str) -> Optional[int]:
    match = re.search(rf"\b{keyword}\b", flat, re.I)
    return match.start() if match else None


def projection(select_sql: str) -> list[str]:
    """Items of the projection list of a single SELECT."""
    flat = flatten(select_sql)
    head = re.match(r"\s*select\s+(?:(?:distinct|all)\s+)?(?:top\s+\d+\s+)?", flat, re.I)
    if head is None:
        return []
    end = _keyword_at(flat, "from")
    body = select_sql[head.end():end if end is not None else len(select_sql)]
    return split_top_level(body)


def projection_item(item: str) -> Optional[tuple[Optional[str], str, Optional[str]]]:
    """Parse ``[qualifier.]column [AS alias]``; None for expressions."""
    match = _ITEM_RE.match(item.strip())
    if match is None:
        return None
    qualifier, column, alias = match.groups()
    return (
        unquote(qualifier) if qualifier else None,
        column if column == "*" else unquote(column),
        unquote(alias) if alias else None,
    )


def from_tables(select_sql: str) -> list[SourceTable]:
    """Base tables of the FROM clause of a single SELECT."""
    flat = flatten(select_sql)
    start = _keyword_at(flat, "from")
    if start is None:
        return []
    end = len(flat)
    for match in re.finditer(r"\b([A-Za-z]+)\b", flat[start + 4:]):
        if match.group(1).lower() in _CLAUSE_END:
            end = start + 4 + match.start()
            break
    clause = flat[start:end]
    tables = []
    for match in _TABLE_RE.finditer(clause):
        name, alias = match.groups()
        parts = [unquote(p) for p in re.split(r"\s*\.\s*(?=(?:[^\"]*\"[^\"]*\")*[^\"]*$)", name)]
        schema, table = (parts[0], parts[-1]) if len(parts) > 1 else (None, parts[0])
        if alias and alias.lower() in _NOT_ALIAS:
            alias = None
        tables.append(SourceTable(schema, table, unquote(alias) if alias else None))
    return tables


def cte_names(sql: str) -> set[str]:
    flat = flatten(strip_comments(sql))
    head = final_select(sql)
    prefix = flat[: max(len(flat) - len(head), 0)]
    return {unquote(name).lower() for name in _CTE_RE.findall(prefix)}


def string_literals(text: str) -> list[str]:
    """Single-quoted literals of ``text`` in order, unescaped."""
    return [value.replace("''", "'") for value in _LITERAL_RE.findall(text)]


def check_values(definition: str, column: str) -> Optional[list[str]]:
    """Allowed values expressed by a check constraint on ``column``.

    Recognizes ``col IN ('a', 'b')``, ``col = ANY (ARRAY['a', 'b'])``
    and ``col = 'a' OR col = 'b'``.

    Returns:
        The literal values in declaration order, or None.
    """
    col = re.escape(column)
    ref = rf"[\[\"`(]*\b{col}\b[\]\"`)]*(?:\s*::\s*[\w ]+?)?\)*"
    match = re.search(rf"{ref}\s+IN\s*\(([^()]*)\)", definition, re.I)
    if match:
        return string_literals(match.group(1)) or None
    match = re.search(rf"{ref}\s*=\s*ANY\s*\(+\s*ARRAY\s*\[(.*?)\]", definition, re.I | re.S)
    if match:
        return string_literals(match.group(1)) or None
    if re.search(r"\bOR\b", definition, re.I):
        values = re.findall(rf"{ref}\s*=\s*'((?:[^']|'')*)'", definition, re.I)
        if values:
            return [value.replace("''", "'") for value in values]
    return None
