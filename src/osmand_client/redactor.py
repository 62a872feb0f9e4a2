"""Logging filter that keeps device identifiers out of log output.

OsmAnd servers authenticate a report by its ``id`` alone, so the device id
is a credential.  It shows up in debug logs in three spellings: raw, inside
a query string or form body (percent-encoded), and inside a JSON body
(JSON-escaped).  The filter registers all three and replaces any
occurrence with ``[REDACTED]``.

Further values are collected from the resolved configuration: every string
whose *key* matches one of ``logging.redact_patterns`` (shell-style globs).
"""

from __future__ import annotations

import fnmatch
import logging
from typing import Any, Iterable

import orjson

from osmand_client.encoding import percent_encode

REDACTED = "[REDACTED]"


def spellings(value: str) -> list[str]:
    """*value* as it may appear raw, percent-encoded, and JSON-escaped."""
    variants = [value, percent_encode(value), orjson.dumps(value).decode()[1:-1]]
    # Longest first so a variant never leaves part of a longer one behind.
    return sorted(set(variants), key=len, reverse=True)


class SecretRedactingFilter(logging.Filter):
    """A :class:`logging.Filter` that scrubs secret values from log output."""

    def __init__(
        self,
        secret_values: Iterable[str] | None = None,
        identifiers: Iterable[str] | None = None,
    ) -> None:
        super().__init__()
        self._secrets: list[str] = []
        for value in secret_values or []:
            self.add_secret(value)
        # Device ids are redacted whatever their length.
        for value in identifiers or []:
            self.add_secret(value, min_length=1)

    def add_secret(self, value: str, min_length: int = 2) -> None:
        """Register *value* and its encoded spellings.

        Values shorter than *min_length* are ignored.
        """
        if not value or len(value) < min_length:
            return
        for variant in spellings(value):
            if variant not in self._secrets:
                self._secrets.append(variant)
        self._secrets.sort(key=len, reverse=True)

    def filter(self, record: logging.LogRecord) -> bool:
        """Redact secrets in the log record's message and args."""
        if self._secrets:
            record.msg = self._redact(record.msg)
            if record.args:
                if isinstance(record.args, dict):
                    record.args = {
                        k: self._redact(v) if isinstance(v, str) else v
                        for k, v in record.args.items()
                    }
                elif isinstance(record.args, tuple):
                    record.args = tuple(
                        self._redact(a) if isinstance(a, str) else a
                        for a in record.args
                    )
        return True  # never suppress the record itself

    def _redact(self, value: Any) -> Any:
        if not isinstance(value, str):
            return value
        for secret in self._secrets:
            if secret in value:
                value = value.replace(secret, REDACTED)
        return value


def collect_secret_values(
    config_dict: dict[str, Any],
    patterns: list[str] | None = None,
) -> list[str]:
    """Walk a config dict and collect values whose *keys* match *patterns*.

    Matching is case-insensitive.
    """
    if not patterns:
        return []

    results: list[str] = []
    _walk(config_dict, patterns, results)
    return results


def _walk(obj: Any, patterns: list[str], out: list[str]) -> None:
    if isinstance(obj, dict):
        for key, val in obj.items():
            if isinstance(val, str) and any(
                fnmatch.fnmatch(key.lower(), p.lower()) for p in patterns
            ):
                out.append(val)
            _walk(val, patterns, out)
    elif isinstance(obj, (list, tuple)):
        for item in obj:
            _walk(item, patterns, out)
