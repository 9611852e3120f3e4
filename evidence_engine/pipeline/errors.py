"""Job-level errors understood by the worker."""

from __future__ import annotations


class NotFoundError(Exception):
    """A referenced source, version, pack or project does not exist.

    transient=True marks a miss that may be replication lag: the job is
    retried like any other failure. Otherwise the job is skipped for good.
    """

    def __init__(self, reason: str, transient: bool = False) -> None:
        self.reason = reason
        self.transient = transient
        super().__init__(reason)


class DeferredError(Exception):
    """The job depends on earlier work for the same entity that has not landed yet.

    The worker puts the job back without spending an attempt. After
    JOB_MAX_DEFERRALS deferrals it is treated as an ordinary failure.
    """

    def __init__(self, reason: str, delay_seconds: int | None = None) -> None:
        self.reason = reason
        self.delay_seconds = delay_seconds
        super().__init__(reason)
