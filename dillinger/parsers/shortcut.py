# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Decoder for Windows shell link (``.lnk``) files.

Only the parts needed to recover a launch target are decoded: the
header flags, the LinkInfo local base path and the string data
sections (name, relative path, working directory, arguments). Malformed
input yields None rather than an exception.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass


logger = logging.getLogger(__name__)

HEADER_SIZE = 0x4C
LINK_SIGNATURE = 0x0000004C
FLAGS_OFFSET = 0x14

HAS_LINK_TARGET_ID_LIST = 0x01
HAS_LINK_INFO = 0x02
HAS_NAME = 0x04
HAS_RELATIVE_PATH = 0x08
HAS_WORKING_DIR = 0x10
HAS_ARGUMENTS = 0x20

# LinkInfo headers at least this large carry LocalBasePathOffset.
_MIN_LINK_INFO_HEADER = 0x1C
_LOCAL_BASE_PATH_FIELD = 0x10


@dataclass(frozen=True)
class ShortcutRecord:
    """Launch information recovered from a shortcut.

    Attributes:
        target: Local base path, or the relative path when absent.
        arguments: Command-line arguments.
        working_directory: Working directory.
        description: Name/description string.
    """

    target: str
    arguments: str = ""
    working_directory: str = ""
    description: str = ""


def _strip_nuls(value: str) -> str:
    return value.replace("\x00", "").strip()


def _u16(buf: bytes, offset: int) -> int | None:
    if offset + 2 > len(buf):
        return None
    return struct.unpack_from("<H", buf, offset)[0]


def _u32(buf: bytes, offset: int) -> int | None:
    if offset + 4 > len(buf):
        return None
    return struct.unpack_from("<I", buf, offset)[0]


def _read_string_data(buf: bytes, offset: int) -> tuple[str, int] | None:
    """Read a count-prefixed UTF-16LE string section.

    Returns:
        Tuple of (decoded string, offset after the section), or None if
        the section is truncated.
    """
    count = _u16(buf, offset)
    if count is None:
        return None
    start = offset + 2
    end = start + count * 2
    if end > len(buf):
        return None
    text = buf[start:end].decode("utf-16-le", errors="replace")
    return _strip_nuls(text), end


def _read_local_base_path(buf: bytes, start: int, size: int) -> str:
    """Extract LocalBasePath from a LinkInfo block, or empty string."""
    header_size = _u32(buf, start + 4)
    if header_size is None or header_size < _MIN_LINK_INFO_HEADER:
        return ""
    path_offset = _u32(buf, start + _LOCAL_BASE_PATH_FIELD)
    if not path_offset or path_offset >= size:
        return ""
    begin = start + path_offset
    end = buf.find(b"\x00", begin, start + size)
    if end == -1:
        end = start + size
    return _strip_nuls(buf[begin:end].decode("ascii", errors="replace"))


def parse_shortcut(data: bytes) -> ShortcutRecord | None:
    """Decode a shell link file.

    Args:
        data: Raw file content.

    Returns:
        The decoded record, or None when the buffer is not a shell link,
        is truncated, or yields no target.
    """
    if len(data) < HEADER_SIZE or _u32(data, 0) != LINK_SIGNATURE:
        logger.debug("Not a shell link (size=%d)", len(data))
        return None

    flags = _u32(data, FLAGS_OFFSET) or 0
    offset = HEADER_SIZE

    if flags & HAS_LINK_TARGET_ID_LIST:
        id_list_size = _u16(data, offset)
        if id_list_size is None:
            return None
        offset += 2 + id_list_size

    target = ""
    if flags & HAS_LINK_INFO:
        link_info_size = _u32(data, offset)
        if link_info_size is None or offset + link_info_size > len(data):
            return None
        target = _read_local_base_path(data, offset, link_info_size)
        offset += link_info_size

    strings: dict[int, str] = {}
    for flag in (HAS_NAME, HAS_RELATIVE_PATH, HAS_WORKING_DIR, HAS_ARGUMENTS):
        if not flags & flag:
            continue
        section = _read_string_data(data, offset)
        if section is None:
            break
        strings[flag], offset = section

    target = target or strings.get(HAS_RELATIVE_PATH, "")
    if not target:
        return None

    return ShortcutRecord(
        target=target,
        arguments=strings.get(HAS_ARGUMENTS, ""),
        working_directory=strings.get(HAS_WORKING_DIR, ""),
        description=strings.get(HAS_NAME, ""),
    )
