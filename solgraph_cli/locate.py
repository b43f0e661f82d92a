"""Map function identities back to locations in Solidity source.

Identities have the form ``Contract.function`` or ``Contract.function#N``.
Lookup is textual (no parse tree required), so it also works on source
that currently fails to parse.
"""

from __future__ import annotations

import re
from typing import Optional, Tuple

from .models import SourceLocation

_SPECIAL_PATTERNS = {
    "constructor": r"\bconstructor\s*\(",
    "receive": r"\breceive\s*\(",
    "fallback": r"\bfallback\s*\(|\bfunction\s*\(",
}


def parse_node_id(node_id: str) -> Optional[Tuple[str, str, int]]:
    """Split an identity into ``(contract, function, occurrence)``.

    Occurrence defaults to 1 and is clamped to at least 1.  Returns ``None``
    for ids without a ``.`` separator.
    """
    parts = node_id.split(".")
    if len(parts) < 2:
        return None
    contract = parts[0]
    function, _, count_raw = parts[1].partition("#")
    try:
        occurrence = int(count_raw) if count_raw else 1
    except ValueError:
        occurrence = 1
    return contract, function, max(1, occurrence)


def label_from_node_id(node_id: str) -> str:
    parsed = parse_node_id(node_id)
    if parsed is None:
        return node_id
    contract, function, _ = parsed
    return f"{contract}.{function}()"


def find_matching_brace(source: str, open_index: int) -> int:
    """Index of the ``}`` closing the ``{`` at *open_index*, or -1.

    Braces inside comments and string literals are ignored.
    """
    depth = 0
    i = open_index
    n = len(source)
    while i < n:
        ch = source[i]
        if ch == "/" and source.startswith("//", i):
            nl = source.find("\n", i)
            i = n if nl == -1 else nl
            continue
        if ch == "/" and source.startswith("/*", i):
            end = source.find("*/", i + 2)
            i = n if end == -1 else end + 2
            continue
        if ch in "\"'":
            i += 1
            while i < n and source[i] != ch:
                i += 2 if source[i] == "\\" else 1
            i += 1
            continue
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return -1


def find_contract_range(code: str, contract: str) -> Optional[Tuple[int, int]]:
    """Body span ``(start, end)`` of the named contract, interface or library."""
    pattern = re.compile(rf"\b(?:contract|interface|library)\s+{re.escape(contract)}\b")
    match = pattern.search(code)
    if match is None:
        return None
    brace = code.find("{", match.end())
    if brace == -1:
        return None
    end = find_matching_brace(code, brace)
    if end == -1:
        return None
    return brace + 1, end


def _function_pattern(function: str) -> "re.Pattern[str]":
    special = _SPECIAL_PATTERNS.get(function)
    if special is not None:
        return re.compile(special)
    return re.compile(rf"\bfunction\s+{re.escape(function)}\s*\(")


def find_function_offset(code: str, node_id: str) -> Optional[Tuple[int, int]]:
    """Absolute ``(offset, length)`` of the function's name token."""
    parsed = parse_node_id(node_id)
    if parsed is None:
        return None
    contract, function, occurrence = parsed

    span = find_contract_range(code, contract)
    start, end = span if span is not None else (0, len(code))
    body = code[start:end]

    for count, match in enumerate(_function_pattern(function).finditer(body), start=1):
        if count != occurrence:
            continue
        token = match.group(0)
        name_at = token.find(function)
        length = len(function)
        if name_at < 0:
            # Unnamed legacy fallback: point at the ``function`` keyword.
            name_at, length = 0, len("function")
        return start + match.start() + name_at, length
    return None


def offset_to_line_column(code: str, offset: int) -> Tuple[int, int]:
    """1-based line and column of *offset*."""
    before = code[: max(0, offset)]
    line = before.count("\n") + 1
    column = offset - before.rfind("\n")
    return line, column


def find_function_location(code: str, node_id: str) -> Optional[SourceLocation]:
    found = find_function_offset(code, node_id)
    if found is None:
        return None
    offset, length = found
    line, column = offset_to_line_column(code, offset)
    return SourceLocation(line=line, column=column, length=length)
