# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Best-effort decoders for install artifacts.

Both parsers return None on input they cannot handle and never raise.
"""

from dillinger.parsers.registry import (
    RegistryEntry,
    convert_cmd_to_reg,
    parse_reg_add_lines,
    render_reg,
)
from dillinger.parsers.shortcut import ShortcutRecord, parse_shortcut


__all__ = [
    # registry
    "RegistryEntry",
    "convert_cmd_to_reg",
    "parse_reg_add_lines",
    "render_reg",
    # shortcut
    "ShortcutRecord",
    "parse_shortcut",
]
