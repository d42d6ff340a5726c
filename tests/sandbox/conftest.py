# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Shared pytest fixtures for sandbox tests."""

from __future__ import annotations

import re
import shlex
from pathlib import Path
from typing import Any

from dillinger.runtime.types import (
    MountKind,
    MountRecord,
    ProcessState,
    ResourceBinding,
)
from dillinger.sandbox.volumes import VOLUMES_KIND


def self_state(
    mounts: list[tuple[str, str]], name: str = "dillinger-core"
) -> ProcessState:
    """Build the orchestrator's own inspection result.

    Args:
        mounts: ``(destination, source)`` bind mounts.
        name: Container name.
    """
    return ProcessState(
        id="selfid",
        name=name,
        status="running",
        running=True,
        exit_code=0,
        created_at="2026-01-01T00:00:00Z",
        mounts=tuple(
            MountRecord(destination=dst, source=src, kind=MountKind.BIND)
            for dst, src in mounts
        ),
    )


def volume_doc(
    volume_id: str, runtime_ref: str, host_path: str
) -> dict[str, Any]:
    """A stored volume document."""
    return {
        "id": volume_id,
        "name": volume_id.title(),
        "dockerVolumeName": runtime_ref,
        "hostPath": host_path,
    }


def add_volume(store: Any, volume_id: str, ref: str, host_path: str) -> None:
    """Register a configured volume in a MemoryStore."""
    store.put(VOLUMES_KIND, volume_doc(volume_id, ref, host_path))


def mounted_at(
    bindings: list[ResourceBinding] | tuple[ResourceBinding, ...],
    mount_point: str,
) -> ResourceBinding | None:
    """Return the last binding at ``mount_point`` (the effective one)."""
    found = None
    for binding in bindings:
        if binding.mount_point == mount_point:
            found = binding
    return found


def find_glob_match(pattern: str, name: str) -> bool:
    """Match like ``find -iname``: fnmatch globs with backslash escapes."""
    out = []
    i = 0
    while i < len(pattern):
        ch = pattern[i]
        if ch == "\\" and i + 1 < len(pattern):
            out.append(re.escape(pattern[i + 1]))
            i += 2
            continue
        if ch == "*":
            out.append(".*")
        elif ch == "?":
            out.append(".")
        elif ch == "[" and "]" in pattern[i + 2 :]:
            end = pattern.index("]", i + 2)
            body = pattern[i + 1 : end]
            if body.startswith("!"):
                body = "^" + body[1:]
            out.append(f"[{body}]")
            i = end + 1
            continue
        else:
            out.append(re.escape(ch))
        i += 1
    regex = "".join(out)
    return re.fullmatch(regex, name, re.IGNORECASE | re.DOTALL) is not None


def probe_tree(root: Path):
    """Probe handler answering ``[ -e ]`` and ``find`` from a real tree.

    ``/mnt/vol`` in commands is mapped onto ``root``.
    """
    def handler(image, command, bindings, env, entrypoint):
        script = command[-1]
        words = shlex.split(script)
        if words[0] == "[":
            target = root / words[2].removeprefix("/mnt/vol").lstrip("/")
            return (0 if target.exists() else 1), ""
        if words[0] == "find" and "-iname" in words:
            base = root / words[1].removeprefix("/mnt/vol").lstrip("/")
            want = words[words.index("-iname") + 1]
            if not base.is_dir():
                return 0, ""
            for child in sorted(base.iterdir()):
                if find_glob_match(want, child.name):
                    rel = child.relative_to(root).as_posix()
                    return 0, f"/mnt/vol/{rel}\n"
            return 0, ""
        return 1, ""

    return handler
