# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Container runtime capability layer.

Thin, blocking client over the docker/podman CLI plus the value types
and classified exceptions exchanged with it.
"""

from dillinger.runtime.client import ContainerRuntime, redact_command
from dillinger.runtime.errors import (
    ContainerRuntimeError,
    NotFoundError,
    ResourceContentionError,
    RuntimeUnavailableError,
    classify_error,
)
from dillinger.runtime.types import (
    BindMode,
    DeviceMapping,
    MountKind,
    MountRecord,
    ProcessSpec,
    ProcessState,
    ProcessSummary,
    ResourceBinding,
    VolumeInfo,
)


__all__ = [
    # client
    "ContainerRuntime",
    "redact_command",
    # errors
    "ContainerRuntimeError",
    "NotFoundError",
    "ResourceContentionError",
    "RuntimeUnavailableError",
    "classify_error",
    # types
    "BindMode",
    "DeviceMapping",
    "MountKind",
    "MountRecord",
    "ProcessSpec",
    "ProcessState",
    "ProcessSummary",
    "ResourceBinding",
    "VolumeInfo",
]
