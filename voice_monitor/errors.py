from __future__ import annotations


class AcquisitionError(RuntimeError):
    """The audio input could not be opened (no device, permission, missing backend)."""


class SchedulerMisuse(ValueError):
    pass
