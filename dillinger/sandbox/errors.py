# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Exceptions raised by session orchestration."""

from __future__ import annotations


class SessionError(Exception):
    """Base exception for session orchestration failures."""


class ConfigurationError(SessionError):
    """Launch or install configuration is missing or invalid.

    Terminal and never retried. The message is user-facing and should
    say how to fix the problem.
    """


class LaunchError(SessionError):
    """Creating or starting the sandboxed process failed."""
