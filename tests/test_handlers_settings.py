"""Tests for business settings, payment setup, appearance and usage handlers."""

import asyncio

import pytest

from invoice_engine.errors import InvalidArgumentError
from invoice_engine.handlers.settings import validate_reference_format

from .fixtures import OWNER_A, call, invoice_args, make_engine


class TestBusinessSettings:
    def test_empty_profile(self, engine) -> None:
        result = call(engine, "get_business_settings")
        assert result.message == "You haven't set up your business profile yet."
        assert result.data == {"business_settings": None}

    def test_update_and_read_back(self, engine) -> None:
        updated = call(
            engine,
            "update_business_settings",
            {"business_name": "Studio North", "currency_code": "eur"},
        )
        assert updated.message == "Updated business name, currency."

        result = call(engine, "get_business_settings")
        assert "Business name: Studio North" in result.message
        assert "Currency: EUR" in result.message

    def test_currency_symbol_used_in_messages(self, engine) -> None:
        call(engine, "set_currency", {"currency_code": "GBP"})

        result = call(engine, "create_invoice", invoice_args())

        assert "total £100.00" in result.message

    def test_nothing_to_update(self, engine) -> None:
        result = call(engine, "update_business_settings", {})
        assert result.error == "Invalid arguments"

    def test_reference_format_preview(self, engine) -> None:
        result = call(engine, "update_business_settings", {"invoice_reference_format": "INV-YYYY-MM-0001"})

        assert result.message == (
            "Updated reference format. New references will look like INV-2024-03-0001."
        )
        created = call(engine, "create_invoice", invoice_args())
        assert created.data["invoice"]["invoice_number"] == "INV-2024-03-0001"

    def test_invalid_reference_format(self, engine) -> None:
        result = call(engine, "update_business_settings", {"invoice_reference_format": "001-INV"})
        assert result.error == "Invalid arguments"

    @pytest.mark.parametrize("template", ["INV-001", "Q1", "EST-YYYY-0001"])
    def test_valid_reference_formats(self, template) -> None:
        assert validate_reference_format(template) == template

    def test_reference_format_must_end_in_digits(self) -> None:
        with pytest.raises(InvalidArgumentError):
            validate_reference_format("INV-")

    def test_unknown_currency_gets_a_note(self, engine) -> None:
        result = call(engine, "set_currency", {"currency_code": "xyz"})
        assert result.message.startswith("Currency set to XYZ.")
        assert "no known symbol" in result.message

    def test_currency_options_mark_current(self, engine) -> None:
        call(engine, "set_currency", {"currency_code": "EUR"})

        result = call(engine, "get_currency_options")

        assert "EUR - Euro (€) (current)" in result.message
        assert result.data["current"] == "EUR"

    def test_region(self, engine) -> None:
        result = call(engine, "set_region", {"region": "United Kingdom"})
        assert result.message == "Region set to United Kingdom."
        assert result.data["business_settings"]["region"] == "United Kingdom"


class TestSetupProgress:
    def test_nothing_done(self, engine) -> None:
        result = call(engine, "get_setup_progress")

        assert result.data["overall_percentage"] == 0
        assert result.data["total_items"] == 10
        assert result.message.startswith("Overall progress: 0% complete (0/10)")
        assert "Next steps: Business Name, Business Address, Business Email and 7 more." in result.message

    def test_partial_progress(self, engine) -> None:
        call(
            engine,
            "update_business_settings",
            {"business_name": "Studio", "currency_code": "USD", "auto_apply_tax": False},
        )

        result = call(engine, "get_setup_progress")

        assert result.data["completed_items"] == 3
        assert result.data["overall_percentage"] == 30
        financial = result.data["checklist"]["financial_settings"]["items"]
        assert {i["key"]: i["completed"] for i in financial}["auto_apply_tax"] is True


class TestPayments:
    def test_nothing_set_up(self, engine) -> None:
        result = call(engine, "get_payment_options")
        assert "PayPal: not set up" in result.message
        assert result.data == {"payment_options": None}

    def test_paypal_before_any_invoice(self, engine) -> None:
        result = call(engine, "setup_paypal_payments", {"paypal_email": "pay@studio.test"})

        assert result.message == (
            "PayPal payments are set up with pay@studio.test. "
            "PayPal will be offered on your next invoice."
        )
        assert result.data["invoice"] is None

        created = call(engine, "create_invoice", invoice_args())
        assert created.data["invoice"]["paypal_active"] is True

    def test_paypal_enabled_on_latest_invoice(self, engine) -> None:
        call(engine, "create_invoice", invoice_args())

        result = call(engine, "setup_paypal_payments", {"paypal_email": "pay@studio.test"})

        assert result.message.endswith("Enabled it on invoice INV-001.")
        assert result.data["invoice"]["paypal_active"] is True

    def test_invalid_paypal_email(self, engine) -> None:
        result = call(engine, "setup_paypal_payments", {"paypal_email": "not-an-email"})
        assert result.error == "Invalid arguments"

    def test_bank_transfer(self, engine) -> None:
        call(engine, "create_invoice", invoice_args())

        result = call(
            engine,
            "setup_bank_transfer_payments",
            {"bank_details": "Studio North, 12-34-56, 12345678", "invoice_number": "INV-001"},
        )

        assert result.message == "Bank transfer payments are set up. Enabled it on invoice INV-001."
        assert result.data["invoice"]["bank_account_active"] is True
        options = call(engine, "get_payment_options")
        assert "Bank transfer: set up" in options.message


class TestAppearance:
    def test_design_defaults(self, engine) -> None:
        result = call(engine, "get_design_options")
        assert result.data["default"] == "clean"
        assert "clean: Minimal layout that keeps attention on the numbers (default)" in result.message

    def test_design_default_from_settings(self, engine) -> None:
        call(engine, "update_business_settings", {"default_invoice_design": "Modern"})

        result = call(engine, "get_design_options")

        assert result.data["default"] == "modern"

    def test_colors(self, engine) -> None:
        result = call(engine, "get_color_options")
        assert result.data["default"] == "#1E40AF"
        assert "teal (#0D9488)" in result.message


class TestUsage:
    def test_free_plan(self, engine) -> None:
        call(engine, "create_invoice", invoice_args())

        result = call(engine, "check_usage_limits")

        assert result.message == "You've used 1 of 3 free documents; 2 left."
        assert result.data["can_create"] is True

    def test_premium_is_unlimited(self, engine, datastore) -> None:
        asyncio.run(datastore.insert("user_profiles", [{"user_id": OWNER_A, "subscription_tier": "Premium"}]))

        result = call(engine, "check_usage_limits")

        assert result.data["unlimited"] is True
        assert result.data["limit"] is None
        assert result.message.startswith("You're on the premium plan with unlimited documents.")

    def test_limit_reached(self) -> None:
        engine = make_engine(free_plan_limit=1)
        call(engine, "create_invoice", invoice_args())

        result = call(engine, "check_usage_limits")

        assert result.data["can_create"] is False
        assert result.data["remaining"] == 0
