"""Central exit-code taxonomy for envsense."""

from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    """CLI exit codes used across envsense.

    ``check`` reuses ``FAILURE`` both for a false overall result and for
    usage errors; predicate problems are distinguishable by ``INVALID_INPUT``.
    """

    SUCCESS = 0
    FAILURE = 1
    USAGE_ERROR = 1
    INVALID_INPUT = 2
