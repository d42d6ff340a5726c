# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Exceptions raised by the container runtime client.

Failed CLI invocations are classified once, here, from the runtime's
error text so callers can match on type instead of parsing messages.
"""

from __future__ import annotations


class ContainerRuntimeError(Exception):
    """Base exception for failed container runtime operations.

    Attributes:
        stderr: Error text reported by the runtime CLI.
    """

    def __init__(self, message: str, stderr: str = "") -> None:
        super().__init__(message)
        self.stderr = stderr


class RuntimeUnavailableError(ContainerRuntimeError):
    """The container engine is unreachable (binary or daemon missing)."""


class NotFoundError(ContainerRuntimeError):
    """The referenced container, volume or image does not exist."""


class ResourceContentionError(ContainerRuntimeError):
    """The resource is busy: in use by another process or being removed."""


_NOT_FOUND_MARKERS = (
    "no such container",
    "no such volume",
    "no such object",
    "no such image",
    "no container with name or id",
    "no volume with name",
    "not found",
)

_CONTENTION_MARKERS = (
    "in use",
    "is being used",
    "conflict",
    "in progress",
    "device or resource busy",
)

_UNAVAILABLE_MARKERS = (
    "cannot connect",
    "connection refused",
    "is the docker daemon running",
    "unable to connect to podman",
    "permission denied while trying to connect",
)


def classify_error(message: str, stderr: str) -> ContainerRuntimeError:
    """Map runtime error text to the matching exception type.

    Args:
        message: Human-readable description of the failed operation.
        stderr: Error output of the runtime CLI.

    Returns:
        The most specific ContainerRuntimeError subclass instance.
    """
    text = stderr.lower()
    full = f"{message}: {stderr.strip()}" if stderr.strip() else message
    if any(marker in text for marker in _UNAVAILABLE_MARKERS):
        return RuntimeUnavailableError(full, stderr)
    if any(marker in text for marker in _CONTENTION_MARKERS):
        return ResourceContentionError(full, stderr)
    if any(marker in text for marker in _NOT_FOUND_MARKERS):
        return NotFoundError(full, stderr)
    return ContainerRuntimeError(full, stderr)
