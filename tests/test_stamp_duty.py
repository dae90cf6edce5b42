"""Stamp duty rates, quotes and document type labels."""
import pytest

from stamp_duty import (
    DEFAULT_STAMP_DUTY_RATE,
    DELIVERY_SURCHARGE,
    DOCUMENT_TYPES,
    MAX_TRANSACTION_VALUE,
    STAMP_DUTY_RATES,
    calculate_stamp_duty,
    delivery_fee,
    format_document_type,
    parse_transaction_value,
    quote,
    valid_transaction_value,
)


class TestCalculateStampDuty:

    def test_sale_deed_digital(self):
        q = quote("sale_deed", 1000000, "digital")
        assert q.stamp_amount == 50000
        assert q.delivery_fee == 0
        assert q.total_amount == 50000

    def test_sale_deed_physical_adds_surcharge(self):
        q = quote("sale_deed", 1000000, "physical")
        assert q.delivery_fee == DELIVERY_SURCHARGE
        assert q.total_amount == 50050

    def test_door_counts_as_physical(self):
        assert delivery_fee("door") == 50
        assert delivery_fee("digital") == 0
        assert delivery_fee(None) == 0

    def test_power_of_attorney(self):
        assert calculate_stamp_duty("power_of_attorney", 200000) == 200

    def test_unknown_type_uses_default_rate(self):
        assert DEFAULT_STAMP_DUTY_RATE == 0.02
        assert calculate_stamp_duty("agreement_to_sell", 100000) == 2000
        assert calculate_stamp_duty(None, 100000) == 2000

    @pytest.mark.parametrize("document_type", sorted(STAMP_DUTY_RATES))
    def test_zero_value_is_free(self, document_type):
        assert calculate_stamp_duty(document_type, 0) == 0

    def test_half_rounds_up(self):
        # 25 * 0.02 = 0.5
        assert calculate_stamp_duty("lease_deed", 25) == 1
        # 10001 * 0.001 = 10.001
        assert calculate_stamp_duty("power_of_attorney", 10001) == 10

    def test_monotonic_in_value(self):
        amounts = [calculate_stamp_duty("gift_deed", v) for v in range(0, 100000, 997)]
        assert amounts == sorted(amounts)

    def test_total_is_stamp_plus_delivery(self):
        for delivery in ("digital", "physical"):
            q = quote("gift_deed", "123456", delivery)
            assert q.total_amount == q.stamp_amount + q.delivery_fee


class TestParseTransactionValue:

    @pytest.mark.parametrize("raw, expected", [
        ("150000", 150000),
        ("1000.75", 1000),
        ("  42abc", 42),
        ("abc", 0),
        ("", 0),
        (None, 0),
        (2500, 2500),
    ])
    def test_leading_integer(self, raw, expected):
        assert parse_transaction_value(raw) == expected

    def test_string_values_are_quoted_like_ints(self):
        assert quote("sale_deed", "1000000").stamp_amount == 50000


class TestDocumentTypes:

    def test_eight_types(self):
        assert len(DOCUMENT_TYPES) == 8
        assert {"value": "sale_deed", "label": "Sale Deed"} in DOCUMENT_TYPES

    def test_format_capitalises_each_word(self):
        assert format_document_type("sale_deed") == "Sale Deed"
        assert format_document_type("power_of_attorney") == "Power Of Attorney"

    def test_format_empty(self):
        assert format_document_type(None) == ""


class TestValidTransactionValue:

    @pytest.mark.parametrize("raw, expected", [
        ("150000", True),
        ("0", True),
        ("1000.5", True),
        (str(MAX_TRANSACTION_VALUE), True),
        (str(MAX_TRANSACTION_VALUE + 1), False),
        ("-1", False),
        ("abc", False),
        ("", False),
        (None, False),
    ])
    def test_bounds(self, raw, expected):
        assert valid_transaction_value(raw) is expected
