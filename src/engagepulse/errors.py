"""Exception types raised by the engagement engine."""

from __future__ import annotations


class EngineError(Exception):
    """Base class for engine failures."""


class NotFound(EngineError):
    """A referenced student, class, or evaluation does not exist."""


class SourceUnavailable(EngineError):
    """The underlying store could not be read or written after retries."""


class TransientStoreError(EngineError):
    """A store call failed in a way that may succeed when retried."""


class InvalidState(EngineError):
    """Stored state violates an engine invariant."""


class ScanCancelled(EngineError):
    """A long-running scan was aborted by the caller."""
