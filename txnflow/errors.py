"""Error taxonomy for the record-processing flow.

``WaitTimeout`` and ``NotFound`` are the recoverable errors: whether they abort
the run depends on the operation they happen in (see ``txnflow.policy``).
``ValidationSkip`` is a routing decision, never surfaced to the operator as a
failure. ``PersistenceFailure`` never aborts a run.
"""

from typing import Iterable, Optional, Union


class FlowError(Exception):
    """Base class for errors raised by txnflow."""


class WaitTimeout(FlowError):
    """A stage, result or navigation condition never held within its timeout."""

    def __init__(self, what: Union[str, Iterable[str]], timeout: float, last_seen: Optional[str] = None):
        self.what = [what] if isinstance(what, str) else list(what)
        self.timeout = timeout
        self.last_seen = last_seen
        message = f"Timed out after {timeout:g}s waiting for {', '.join(self.what)}"
        if last_seen is not None:
            message += f' (last seen: "{last_seen}")'
        super().__init__(message)


class NotFound(FlowError):
    """A required element was not present in the document."""

    def __init__(self, target: str, detail: str = ""):
        self.target = target
        self.detail = detail
        message = f"Element not found: {target}"
        if detail:
            message += f" ({detail})"
        super().__init__(message)


class ValidationSkip(FlowError):
    """A record must not be processed.

    ``kind`` is ``"status"`` for rows already carrying a status and
    ``"invalid"`` for rows without enough input to be submitted.
    """

    def __init__(self, reason: str, kind: str = "invalid"):
        self.reason = reason
        self.kind = kind
        super().__init__(reason)


class PersistenceFailure(FlowError):
    """Writing a value back to the record store failed."""


class RunAborted(FlowError):
    """An unhandled error on one record stopped the whole run."""

    def __init__(self, row: int, cause: BaseException):
        self.row = row
        self.cause = cause
        super().__init__(f"Run aborted on row {row}: {cause}")
