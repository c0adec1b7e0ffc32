"""Phone number normalization for mobile-money requests."""
from __future__ import annotations

DEFAULT_COUNTRY_CODE = "256"


def normalize_msisdn(phone_number: str, *, country_code: str = DEFAULT_COUNTRY_CODE) -> str:
    """Convert a locally entered number to international format.

    A leading national trunk ``0`` is replaced with ``+<country_code>``; any
    other number without a ``+`` simply gains one. Nothing else is rewritten.
    """

    msisdn = phone_number.strip()
    if not msisdn:
        raise ValueError("phone number is required")
    if msisdn.startswith("0"):
        return f"+{country_code.lstrip('+')}{msisdn[1:]}"
    if not msisdn.startswith("+"):
        return f"+{msisdn}"
    return msisdn


__all__ = ["DEFAULT_COUNTRY_CODE", "normalize_msisdn"]
