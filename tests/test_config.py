"""Tests for settings loading."""

import pytest

from billbook.config import AppSettings, get_settings, validate_all_settings


@pytest.fixture(autouse=True)
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestAppSettings:

    def test_defaults(self, monkeypatch):
        for name in ("INVOICE_NUMBER_PREFIX", "FIRST_INVOICE_NUMBER", "TAX_INTERSTATE_IGST"):
            monkeypatch.delenv(name, raising=False)
        settings = AppSettings(_env_file=None)
        assert settings.invoice_number_prefix == "INV-"
        assert settings.first_invoice_number == 1001
        assert settings.default_payment_terms_days == 15
        assert settings.low_stock_threshold == 5
        assert settings.tax_interstate_igst is False

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("INVOICE_NUMBER_PREFIX", "CC/")
        monkeypatch.setenv("TAX_INTERSTATE_IGST", "true")
        settings = get_settings().app
        assert settings.invoice_number_prefix == "CC/"
        assert settings.tax_interstate_igst is True


class TestValidateAllSettings:

    def test_reports_missing_sections(self, monkeypatch):
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        monkeypatch.setenv("FIRESTORE_PROJECT_ID", "billbook-test")
        results = validate_all_settings()
        assert results["app"] is True
        assert results["firestore"] is True
        assert results["gemini"] is False
        assert "gemini_error" in results
