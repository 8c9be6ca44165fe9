from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

from app.forms.config import get_form_config, get_lead_form_config, get_quotation_form_config, get_site_visit_form_config
from app.forms.defaults import get_default_form_data, reference_number
from app.forms.line_items import empty_line_item


NOW = datetime(2026, 10, 19, 8, 30, 15, tzinfo=timezone.utc)


def test_lead_defaults_use_first_option_and_blank_text() -> None:
    defaults = get_default_form_data(get_lead_form_config(), now=NOW)

    assert defaults["name"] == ""
    assert defaults["service_type"] == "installation"
    assert defaults["source"] == "website"
    assert defaults["preferred_contact_method"] == "phone"
    assert defaults["estimated_value"] == 0


def test_quotation_defaults() -> None:
    defaults = get_default_form_data(get_quotation_form_config(), now=NOW)

    assert defaults["customer_type"] == "consultation"
    assert defaults["customer_id"] == ""
    assert defaults["valid_until"] == "2026-10-19"
    assert defaults["tax_rate"] == 18
    assert defaults["discount_percentage"] == 0
    assert defaults["items"] == [empty_line_item()]
    assert defaults["quote_number"] == reference_number("QT", NOW)
    for display_field in ("subtotal", "discount_amount", "tax_amount", "total_amount"):
        assert display_field not in defaults


def test_invoice_number_prefix() -> None:
    defaults = get_default_form_data(get_form_config("invoices"), now=NOW)

    assert re.fullmatch(r"INV-\d+", defaults["invoice_number"])


def test_time_and_step_defaults() -> None:
    defaults = get_default_form_data(get_site_visit_form_config(), now=NOW)

    assert defaults["scheduled_time"] == "09:00"
    assert defaults["estimated_duration"] == 0.5
    assert defaults["scheduled_date"] == "2026-10-19"


def test_defaults_are_deterministic_for_a_fixed_clock() -> None:
    descriptor = get_quotation_form_config()

    assert get_default_form_data(descriptor, now=NOW) == get_default_form_data(descriptor, now=NOW)


def test_generated_numbers_keep_their_prefix_across_calls() -> None:
    descriptor = get_form_config("invoices")

    first = get_default_form_data(descriptor, now=NOW)
    later = get_default_form_data(descriptor, now=NOW + timedelta(milliseconds=5))

    assert first["invoice_number"] != later["invoice_number"]
    assert first["invoice_number"].split("-")[0] == later["invoice_number"].split("-")[0] == "INV"
    assert {key: value for key, value in first.items() if key != "invoice_number"} == {
        key: value for key, value in later.items() if key != "invoice_number"
    }
