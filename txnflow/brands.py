from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict

from txnflow.constants import COUNTRY_NAME


class BrandIdentity(BaseModel):
    """Fixed billing identity typed into every transaction for one brand."""

    model_config = ConfigDict(frozen=True)

    key: str
    cardholder_name: str
    billing_first_name: str
    postal_code: str
    country_name: str = COUNTRY_NAME
    street_address: Optional[str] = None
    region: Optional[str] = None
    review_by_default: bool = False
    result_timeout: float = 60.0

    @property
    def has_street_fields(self) -> bool:
        return bool(self.street_address or self.region)


BOOKING = BrandIdentity(
    key="booking",
    cardholder_name="BOOKING.COM",
    billing_first_name="Booking.com",
    postal_code="10118",
)

AGODA = BrandIdentity(
    key="agoda",
    cardholder_name="Agoda Ltd.",
    billing_first_name="Agoda Company Pte Ltd.",
    postal_code="80525",
    street_address="155 E. Boardwalk #490",
    region="Fort Collins, CO",
    review_by_default=True,
    result_timeout=120.0,
)

BRANDS: Dict[str, BrandIdentity] = {b.key: b for b in (BOOKING, AGODA)}
DEFAULT_BRAND = BOOKING.key


def resolve_brand(name: Optional[str]) -> BrandIdentity:
    """Look a brand up by name, case- and whitespace-insensitively.

    ``None`` or an empty name selects the default brand.
    """
    key = (name or "").strip().lower() or DEFAULT_BRAND
    try:
        return BRANDS[key]
    except KeyError:
        raise ValueError(f"Unknown brand {name!r}; expected one of: {', '.join(sorted(BRANDS))}") from None
