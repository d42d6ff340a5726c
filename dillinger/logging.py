# Copyright (c) 2026 Pyry Haulos
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""Root logger setup and redaction of secrets handed to sandboxes.

Entry points call :func:`configure_logging` once. Library modules only
use ``logging.getLogger(__name__)``. Secrets are kept in a process-wide
registry because session monitors log from their own threads.
"""

import logging
import re
import sys
import threading
from collections.abc import Mapping
from typing import TextIO


DEFAULT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
REDACTED = "[REDACTED]"

# Environment variable names whose values count as secrets.
_SECRET_NAME_PATTERN = re.compile(
    r"TOKEN|SECRET|PASSWORD|PASSWD|KEY|COOKIE", re.IGNORECASE
)

_lock = threading.Lock()
_secrets: set[str] = set()
_pattern: re.Pattern[str] | None = None


def register_secret(secret: str) -> None:
    """Redact ``secret`` from all subsequent log output.

    Empty strings are ignored.
    """
    global _pattern
    if not secret:
        return
    with _lock:
        if secret in _secrets:
            return
        _secrets.add(secret)
        # Longest first so a secret containing another redacts fully
        ordered = sorted(_secrets, key=len, reverse=True)
        _pattern = re.compile("|".join(re.escape(s) for s in ordered))


def register_env_secrets(env: Mapping[str, str]) -> None:
    """Register the values of secret-looking environment variables.

    Args:
        env: Environment about to be passed to a sandboxed process.
    """
    for name, value in env.items():
        if _SECRET_NAME_PATTERN.search(name):
            register_secret(value)


def registered_secrets() -> frozenset[str]:
    with _lock:
        return frozenset(_secrets)


def clear_secrets() -> None:
    """Forget every registered secret. Used by tests."""
    global _pattern
    with _lock:
        _secrets.clear()
        _pattern = None


def redact(text: str) -> str:
    """Return ``text`` with registered secrets replaced."""
    pattern = _pattern
    if pattern is None:
        return text
    return pattern.sub(REDACTED, text)


def _redact_arg(value: object) -> object:
    return redact(value) if isinstance(value, str) else value


class SecretFilter(logging.Filter):
    """Rewrites records so registered secrets never reach a handler.

    Both the message template and its string arguments are redacted.
    Records are never dropped.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if _pattern is None:
            return True
        record.msg = redact(str(record.msg))
        if isinstance(record.args, Mapping):
            record.args = {
                key: _redact_arg(value) for key, value in record.args.items()
            }
        elif record.args:
            record.args = tuple(_redact_arg(arg) for arg in record.args)
        return True


def configure_logging(
    level: int = logging.INFO,
    format_string: str | None = None,
    add_secret_filter: bool = True,
    stream: TextIO | None = None,
) -> None:
    """Install a single stderr handler on the root logger.

    Calling it again replaces the previous handler rather than adding
    a second one.

    Args:
        level: Root logger level.
        format_string: Record format. Defaults to :data:`DEFAULT_FORMAT`.
        add_secret_filter: Attach :class:`SecretFilter` to the handler.
        stream: Output stream. Defaults to ``sys.stderr``.
    """
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(logging.Formatter(format_string or DEFAULT_FORMAT))
    if add_secret_filter:
        handler.addFilter(SecretFilter())

    root = logging.getLogger()
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)
