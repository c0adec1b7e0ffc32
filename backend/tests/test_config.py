import pytest

from backend.app.config import load_settings


def test_defaults_without_environment() -> None:
    settings = load_settings({})

    assert settings.admin_emails == ()
    assert settings.payment_country_code == "256"
    assert settings.payment_max_attempts == 30
    assert settings.payment_poll_interval == 2.0
    assert settings.ledger_backend == "memory"
    assert settings.session_cookie_name == "session"
    assert settings.session_cookie_secure is False


def test_values_are_parsed_from_environment() -> None:
    settings = load_settings(
        {
            "ADMIN_EMAILS": " boss@example.com, Ops@Example.com ,",
            "PAYMENT_API_BASE_URL": "https://payments.test/api/",
            "PAYMENT_COUNTRY_CODE": "+254",
            "PAYMENT_MAX_ATTEMPTS": "5",
            "PAYMENT_POLL_INTERVAL": "0.5",
            "LEDGER_BACKEND": "Postgres",
            "DB_PORT": "6543",
            "SESSION_COOKIE_SECURE": "true",
        }
    )

    assert settings.admin_emails == ("boss@example.com", "Ops@Example.com")
    assert settings.payment_api_base_url == "https://payments.test/api"
    assert settings.payment_country_code == "254"
    assert settings.payment_max_attempts == 5
    assert settings.payment_poll_interval == 0.5
    assert settings.ledger_backend == "postgres"
    assert settings.db_config["port"] == 6543
    assert settings.session_cookie_secure is True


def test_invalid_values_raise() -> None:
    with pytest.raises(ValueError):
        load_settings({"PAYMENT_MAX_ATTEMPTS": "many"})
    with pytest.raises(ValueError):
        load_settings({"LEDGER_BACKEND": "sqlite"})
