"""Error hierarchy for the OpenTSDB reporter.

All reporter exceptions inherit from ReporterError so callers can
catch the base class for broad error handling. None of them escape a
report cycle: ``OpenTSDBReporter.run()`` contains and logs every one.
"""

from __future__ import annotations


class ReporterError(Exception):
    """Base exception for all opentsdb-reporter errors."""


class ConfigurationError(ReporterError):
    """Invalid reporter configuration."""


class ConnectError(ReporterError):
    """The collector could not be reached.

    Aborts the current cycle before any line is written.
    """


class WriteError(ReporterError):
    """Streaming lines to an open connection failed mid-cycle."""


class EncodeError(ReporterError):
    """A single reading could not be rendered as protocol lines.

    Only the failing reading is skipped; the rest of the batch is still
    encoded and delivered.
    """


class HostResolutionError(ReporterError):
    """The local host name could not be resolved.

    Non-fatal: the reporter is built without a ``host=`` tag.
    """


__all__ = [
    "ConfigurationError",
    "ConnectError",
    "EncodeError",
    "HostResolutionError",
    "ReporterError",
    "WriteError",
]
