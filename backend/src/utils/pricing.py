"""
Payment breakdown for a booking.

The engine never computes amounts beyond the service's listed price, the fixed
reservation fee and the fixed tax rate.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Optional

from core import config

_PAISE = Decimal("0.01")


def _money(value: Decimal) -> Decimal:
    return value.quantize(_PAISE, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PaymentBreakdown:
    reservation_fee: Decimal
    reservation_tax: Decimal
    reservation_total: Decimal
    service_price: Decimal
    service_tax: Decimal
    service_total: Decimal
    convenience_fee: Decimal
    amount_due_online: Decimal

    def to_dict(self) -> Dict[str, str]:
        return {name: str(value) for name, value in self.__dict__.items()}


def payment_breakdown(
    service_price: Decimal,
    reservation_fee: Optional[Decimal] = None,
    tax_rate: Optional[Decimal] = None,
    convenience_fee: Optional[Decimal] = None,
    service_payment_online: Optional[bool] = None,
) -> PaymentBreakdown:
    """
    Compute reservation and service totals for ``service_price``.

    Defaults come from configuration. The amount due online is the reservation
    total, plus the service total when online service payment is enabled, plus
    any convenience fee.
    """
    fee = config.APPOINTMENT_RESERVATION_FEE if reservation_fee is None else reservation_fee
    rate = config.GST_TAX_RATE if tax_rate is None else tax_rate
    extra = config.CONVENIENCE_FEE if convenience_fee is None else convenience_fee
    online = config.ENABLE_SERVICE_PAYMENT_ONLINE if service_payment_online is None else service_payment_online

    price = Decimal(service_price)
    reservation_tax = _money(fee * rate)
    reservation_total = _money(fee + reservation_tax)
    service_tax = _money(price * rate)
    service_total = _money(price + service_tax)

    due = reservation_total + (service_total if online else Decimal("0")) + extra

    return PaymentBreakdown(
        reservation_fee=_money(fee),
        reservation_tax=reservation_tax,
        reservation_total=reservation_total,
        service_price=_money(price),
        service_tax=service_tax,
        service_total=service_total,
        convenience_fee=_money(extra),
        amount_due_online=_money(due),
    )


def to_paise(amount: Decimal) -> int:
    """Convert a rupee amount to integer paise for the gateway."""
    return int(_money(amount) * 100)
