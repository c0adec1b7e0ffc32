import pytest

from backend.app.payments import normalize_msisdn


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("0772123456", "+256772123456"),
        ("  0772123456 ", "+256772123456"),
        ("256772123456", "+256772123456"),
        ("+256772123456", "+256772123456"),
        ("+44 7700 900123", "+44 7700 900123"),
    ],
)
def test_normalize_msisdn(raw: str, expected: str) -> None:
    assert normalize_msisdn(raw) == expected


def test_normalize_msisdn_uses_configured_country_code() -> None:
    assert normalize_msisdn("0712345678", country_code="254") == "+254712345678"
    assert normalize_msisdn("0712345678", country_code="+254") == "+254712345678"


def test_normalize_msisdn_rejects_blank_input() -> None:
    with pytest.raises(ValueError):
        normalize_msisdn("   ")
