# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Conversion of batch-file registry scripts to ``.reg`` imports.

Many GOG-style installs ship a ``.cmd``/``.bat`` that writes registry
values with ``REG ADD``. Running it under Wine needs ``cmd.exe``, so the
``REG ADD`` lines are instead extracted and rendered as a registry
import document for ``regedit /S``. This is pattern matching, not a
batch interpreter: the only variable understood is ``regpath`` and
unrecognized lines are skipped.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass


logger = logging.getLogger(__name__)

REG_HEADER = "Windows Registry Editor Version 5.00\n\n"

_REGPATH_RE = re.compile(r"SET\s+regpath=[\"']([^\"']+)[\"']", re.IGNORECASE)
# A whole argument, optionally quoted, becomes one quoted argument
_REGPATH_ARG_RE = re.compile(r'(?<!\S)"?%regpath%"?(?!\S)', re.IGNORECASE)
_REGPATH_TOKEN_RE = re.compile(r"%regpath%", re.IGNORECASE)
_REG_ADD_RE = re.compile(
    r'REG\s+ADD\s+"([^"]+)"\s+/v\s+"([^"]+)"\s+/t\s+(\S+)\s+/d\s+(.+?)'
    r"\s+/f\b",
    re.IGNORECASE,
)
_QUOTED_RE = re.compile(r'"([^"]*)"')

SUPPORTED_TYPES = frozenset({"REG_SZ", "REG_DWORD", "REG_BINARY"})


@dataclass(frozen=True)
class RegistryEntry:
    """One registry value write.

    Attributes:
        key_path: Full key (e.g. ``HKCU\\Software\\Game``).
        value_name: Value name.
        value_type: ``REG_SZ``, ``REG_DWORD`` or ``REG_BINARY``.
        value_data: Raw data as written in the script, unquoted.
    """

    key_path: str
    value_name: str
    value_type: str
    value_data: str


def _is_skipped(line: str) -> bool:
    return (
        not line
        or line.startswith("::")
        or line.startswith("@")
        or line.upper().startswith("SET ")
        or line.upper().startswith("REM ")
        or line.lower() == "exit"
    )


def _find_regpath(lines: list[str]) -> str | None:
    for line in lines:
        match = _REGPATH_RE.search(line)
        if match:
            return match.group(1)
    return None


def parse_reg_add_lines(script: str) -> list[RegistryEntry]:
    """Extract ``REG ADD`` value writes from a batch script, in order.

    ``%regpath%`` is replaced with the first ``SET regpath=...`` value.
    As a whole argument it becomes one quoted argument. Inside a longer
    argument it is replaced in place.

    Args:
        script: Batch script text.

    Returns:
        Matched entries in script order; unmatched lines are skipped.
    """
    lines = script.splitlines()
    regpath = _find_regpath(lines)
    entries: list[RegistryEntry] = []

    for raw in lines:
        line = raw.strip()
        if _is_skipped(line):
            continue
        if regpath is not None:
            line = _REGPATH_ARG_RE.sub(lambda _: f'"{regpath}"', line)
            line = _REGPATH_TOKEN_RE.sub(lambda _: regpath, line)

        match = _REG_ADD_RE.search(line)
        if not match:
            logger.debug("Skipping unrecognized line: %.80s", line)
            continue

        key_path, value_name, value_type, data = match.groups()
        data = data.strip()
        if data.startswith('"'):
            quoted = _QUOTED_RE.match(data)
            if quoted:
                data = quoted.group(1)

        value_type = value_type.upper()
        if value_type not in SUPPORTED_TYPES:
            logger.debug("Skipping unsupported type %s", value_type)
            continue
        entries.append(
            RegistryEntry(
                key_path=key_path,
                value_name=value_name,
                value_type=value_type,
                value_data=data,
            )
        )
    return entries


def _format_value(entry: RegistryEntry) -> str | None:
    if entry.value_type == "REG_SZ":
        return f'"{entry.value_name}"="{entry.value_data}"'
    if entry.value_type == "REG_DWORD":
        text = entry.value_data.strip()
        base = 16 if text.lower().startswith("0x") else 10
        try:
            number = int(text, base)
        except ValueError:
            return None
        return f'"{entry.value_name}"=dword:{number & 0xFFFFFFFF:08x}'
    data = entry.value_data.replace(",", "").replace(" ", "")
    pairs = ",".join(data[i : i + 2] for i in range(0, len(data), 2))
    return f'"{entry.value_name}"=hex:{pairs}'


def render_reg(entries: list[RegistryEntry]) -> str:
    """Render entries as a registry import document.

    Consecutive entries of the same key share one ``[key]`` header; keys
    appear in entry order.
    """
    out = [REG_HEADER]
    current_key: str | None = None
    for entry in entries:
        line = _format_value(entry)
        if line is None:
            logger.debug("Skipping unparseable value %s", entry.value_name)
            continue
        if entry.key_path != current_key:
            current_key = entry.key_path
            out.append(f"\n[{entry.key_path}]\n")
        out.append(line + "\n")
    return "".join(out)


def convert_cmd_to_reg(script: str) -> str | None:
    """Convert a batch registry script to a ``.reg`` document.

    Args:
        script: Batch script text.

    Returns:
        The registry import document, or None if the script contains no
        recognizable ``REG ADD`` lines.
    """
    entries = parse_reg_add_lines(script)
    logger.info("Converted %d registry values from script", len(entries))
    if not entries:
        return None
    return render_reg(entries)
