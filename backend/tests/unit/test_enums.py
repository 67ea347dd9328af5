"""
Unit tests for enum normalization at the repository edge.
"""

import pytest

from models.enums import (
    AppointmentStatus, NormalizedEnum, PaymentStatus, ServicePaymentStatus, normalize_enum_value, stored_spellings,
)


class TestNormalizeEnumValue:

    @pytest.mark.parametrize("raw,expected", [
        ("confirmed", AppointmentStatus.CONFIRMED),
        ("Confirmed", AppointmentStatus.CONFIRMED),
        ("  PENDING ", AppointmentStatus.PENDING),
        ("canceled", AppointmentStatus.CANCELLED),
        ("no-show", AppointmentStatus.NO_SHOW),
        ("No Show", AppointmentStatus.NO_SHOW),
        (AppointmentStatus.COMPLETED, AppointmentStatus.COMPLETED),
    ])
    def test_status_variants(self, raw, expected):
        assert normalize_enum_value(AppointmentStatus, raw) is expected

    def test_payment_variants(self):
        assert normalize_enum_value(PaymentStatus, "Reservation Paid") is PaymentStatus.RESERVATION_PAID
        assert normalize_enum_value(ServicePaymentStatus, "WAIVED") is ServicePaymentStatus.WAIVED

    def test_unknown_value_raises(self):
        with pytest.raises(ValueError):
            normalize_enum_value(AppointmentStatus, "rescheduled")

    def test_none_raises(self):
        with pytest.raises(ValueError):
            normalize_enum_value(AppointmentStatus, None)


class TestNormalizedEnumColumn:

    def test_read_normalizes(self):
        column = NormalizedEnum(AppointmentStatus)
        assert column.process_result_value("Confirmed", None) is AppointmentStatus.CONFIRMED
        assert column.process_result_value(None, None) is None

    def test_write_stores_canonical_value(self):
        column = NormalizedEnum(PaymentStatus)
        assert column.process_bind_param(PaymentStatus.FULLY_PAID, None) == "fully_paid"
        assert column.process_bind_param("Fully Paid", None) == "fully_paid"


def test_stored_spellings_include_aliases():
    assert stored_spellings(AppointmentStatus.CANCELLED) == ["canceled", "cancelled"]
    assert "no-show" in stored_spellings(AppointmentStatus.NO_SHOW)
    assert stored_spellings(AppointmentStatus.PENDING) == ["pending"]
