"""Error-handling policy per operation.

Every guarded step in a run is named here once, with what happens when it
raises a recoverable error (``WaitTimeout``/``NotFound``):

- ``PROPAGATE``: the error ends the record, and with it the run.
- ``RETRY_ONCE``: sleep, try exactly once more, then propagate.
- ``LOG_AND_CONTINUE``: print a warning and carry on with a default value.
  ``PersistenceFailure`` is recoverable here too.

Anything else (programming errors, a closed browser) always propagates.
"""

import asyncio
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from rich.markup import escape

from txnflow.errors import NotFound, PersistenceFailure, WaitTimeout
from txnflow.utils import narrate


class Policy(str, Enum):
    PROPAGATE = "propagate"
    RETRY_ONCE = "retry_once"
    LOG_AND_CONTINUE = "log_and_continue"


POLICY_TABLE: Dict[str, Policy] = {
    # sign-in
    "session.open_login": Policy.PROPAGATE,
    "session.login_page": Policy.PROPAGATE,
    "session.post_login": Policy.PROPAGATE,
    "session.otp_title": Policy.LOG_AND_CONTINUE,
    "session.otp_dashboard": Policy.PROPAGATE,
    # navigating to the new transaction page
    "nav.transactions_link": Policy.PROPAGATE,
    "nav.click": Policy.PROPAGATE,
    "nav.settle": Policy.LOG_AND_CONTINUE,
    "nav.new_transaction_page": Policy.PROPAGATE,
    # filling
    "form.submit_guard": Policy.LOG_AND_CONTINUE,
    "form.primary_field": Policy.RETRY_ONCE,
    "form.secondary_field": Policy.LOG_AND_CONTINUE,
    "form.field": Policy.PROPAGATE,
    "form.merchant_commit": Policy.LOG_AND_CONTINUE,
    "form.optional_field": Policy.LOG_AND_CONTINUE,
    "form.card_readback": Policy.LOG_AND_CONTINUE,
    "form.fraud_checkbox": Policy.LOG_AND_CONTINUE,
    "form.release_guard": Policy.LOG_AND_CONTINUE,
    # submitting and reading the result
    "submit.trigger": Policy.PROPAGATE,
    "submit.navigation": Policy.LOG_AND_CONTINUE,
    "submit.result_page": Policy.PROPAGATE,
    "result.page_ready": Policy.LOG_AND_CONTINUE,
    "result.status": Policy.RETRY_ONCE,
    "result.capture": Policy.LOG_AND_CONTINUE,
    # after the result
    "persist.status": Policy.LOG_AND_CONTINUE,
    "return.transactions_list": Policy.LOG_AND_CONTINUE,
    "evidence.screenshot": Policy.LOG_AND_CONTINUE,
}

RECOVERABLE = (WaitTimeout, NotFound)
TOLERATED = RECOVERABLE + (PersistenceFailure,)


class PolicyGuard:
    def __init__(self, table: Optional[Dict[str, Policy]] = None, retry_delay: float = 1.5):
        self.table = POLICY_TABLE if table is None else table
        self.retry_delay = retry_delay

    def policy_for(self, operation: str) -> Policy:
        try:
            return self.table[operation]
        except KeyError:
            raise KeyError(f"No error policy declared for operation {operation!r}") from None

    async def run(
        self,
        operation: str,
        action: Callable[[], Awaitable[Any]],
        default: Any = None,
        retry_delay: Optional[float] = None,
    ) -> Any:
        """Run ``action()`` under the policy declared for ``operation``.

        ``action`` is a factory so a retry gets a fresh awaitable.
        """
        policy = self.policy_for(operation)
        if policy is Policy.PROPAGATE:
            return await action()
        if policy is Policy.RETRY_ONCE:
            try:
                return await action()
            except RECOVERABLE as exc:
                narrate(f"[yellow]⚠ {operation}: {escape(str(exc))}. Retrying once...[/yellow]")
                await asyncio.sleep(self.retry_delay if retry_delay is None else retry_delay)
                return await action()
        try:
            return await action()
        except TOLERATED as exc:
            narrate(f"[yellow]⚠ {operation}: {escape(str(exc))} (continuing)[/yellow]")
            return default
