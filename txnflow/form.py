"""Fills the new-transaction form from one record.

Fill order is fixed. Required fields propagate their errors; the brand's
optional billing fields, the card read-back and the fraud-check checkbox are
best-effort (see ``txnflow.policy``).
"""

import asyncio
import re

from pydantic import BaseModel, ConfigDict, Field
from rich.markup import escape

from txnflow.brands import BrandIdentity
from txnflow.config import Timings
from txnflow.constants import (
    CARD_FIRST_DIGITS,
    CARD_LAST_DIGITS,
    FORM_ID,
    FORM_SELECTORS,
    SECONDARY_FIELDS,
)
from txnflow.errors import NotFound, WaitTimeout
from txnflow.policy import PolicyGuard
from txnflow.records import Record
from txnflow.utils import digits_only, narrate


class FormValues(BaseModel):
    """Values typed for one record. Card data stays out of reprs."""

    model_config = ConfigDict(frozen=True)

    merchant_account: str = ""
    amount: str = ""
    order_id: str = ""
    customer_first_name: str = ""
    card_number: str = Field("", repr=False)
    expiration_date: str = ""
    cvv: str = Field("", repr=False)

    @classmethod
    def from_record(cls, record: Record) -> "FormValues":
        first4 = digits_only(record.field("card_first4"))[:CARD_FIRST_DIGITS]
        last12 = digits_only(record.field("card_last12"))[:CARD_LAST_DIGITS]
        return cls(
            merchant_account=record.field("merchant_account"),
            amount=record.field("amount"),
            order_id=record.field("order_id"),
            customer_first_name=record.field("customer_first_name"),
            card_number=first4 + last12,
            expiration_date=re.sub(r"\s+", "", record.field("expiration_date")),
            cvv=record.field("cvv"),
        )


class FormSequencer:
    def __init__(self, page, timings: Timings, guard: PolicyGuard):
        self.page = page
        self.timings = timings
        self.guard = guard

    async def fill(self, record: Record, brand: BrandIdentity):
        values = FormValues.from_record(record)
        page, t = self.page, self.timings
        sel = FORM_SELECTORS

        await self.guard.run("form.submit_guard", lambda: page.install_submit_guard(FORM_ID), default=False)

        await self.guard.run(
            "form.primary_field",
            lambda: page.wait_for(sel["merchant_account"], t.field_timeout),
            retry_delay=t.retry_delay,
        )
        await asyncio.gather(
            *(
                self.guard.run("form.secondary_field", lambda s=sel[name]: page.wait_for(s, t.field_timeout))
                for name in SECONDARY_FIELDS
            )
        )
        await asyncio.sleep(t.field_settle)

        if values.merchant_account:
            await self._type("merchant_account", values.merchant_account, delay_ms=t.merchant_typing_delay_ms)
            await asyncio.sleep(t.merchant_settle)
            # Tab commits the autocomplete choice
            await self.guard.run("form.merchant_commit", lambda: page.press(sel["merchant_account"], "Tab"))

        for name in ("amount", "order_id", "customer_first_name"):
            value = getattr(values, name)
            if value:
                await self._type(name, value)

        await self._type("cardholder_name", brand.cardholder_name)
        if values.card_number:
            await self._type("card_number", values.card_number)
        if values.expiration_date:
            await self._type("expiration_date", values.expiration_date)
        if values.cvv:
            await self._type("cvv", values.cvv)
        await self._type("billing_postal_code", brand.postal_code)

        await self._type("billing_first_name", brand.billing_first_name, operation="form.optional_field")
        if brand.has_street_fields:
            for name, value in (("billing_street", brand.street_address), ("billing_region", brand.region)):
                if value:
                    await self._type(name, value, operation="form.optional_field")
        await self.guard.run("form.optional_field", lambda: page.set_value(sel["billing_company"], ""))
        await self.guard.run("form.optional_field", lambda: self._select_country(brand.country_name))

        if values.card_number:
            await self.guard.run("form.card_readback", lambda: self.verify_card_number(values.card_number))
        await self.guard.run("form.fraud_checkbox", self.ensure_fraud_check_skipped)
        # guard is scoped to the fill; the operator may submit in review mode
        await self.guard.run("form.release_guard", page.remove_submit_guard, default=False)
        narrate(f"[green]✓ Form filled for row {record.row_number}[/green] [dim]{escape(repr(values))}[/dim]")

    async def _type(self, name: str, value: str, delay_ms=None, operation: str = "form.field"):
        delay = self.timings.typing_delay_ms if delay_ms is None else delay_ms
        await self.guard.run(operation, lambda: self.page.type(FORM_SELECTORS[name], value, delay_ms=delay))

    async def _select_country(self, country: str):
        selector = FORM_SELECTORS["billing_country"]
        try:
            await self.page.select_option(selector, country)
        except (WaitTimeout, NotFound):
            await self.page.set_value(selector, country)

    async def verify_card_number(self, expected: str) -> str:
        """Re-read the card field and type any digits the page dropped."""
        selector = FORM_SELECTORS["card_number"]
        current = digits_only(await self.page.value_of(selector))
        if len(current) < len(expected):
            missing = expected[len(current):]
            narrate(f"[yellow]⚠ Card number short by {len(missing)} digit(s); typing the rest[/yellow]")
            await self.page.type(selector, missing, delay_ms=self.timings.typing_delay_ms, replace=False)
            current = digits_only(await self.page.value_of(selector))
        return current

    async def ensure_fraud_check_skipped(self) -> bool:
        selector = FORM_SELECTORS["skip_fraud_check"]
        if await self.page.is_checked(selector):
            return True
        await self.page.scroll_into_view(selector)
        await self.page.click(selector)
        if not await self.page.is_checked(selector):
            await self.page.set_checked(selector)
        return await self.page.is_checked(selector)
