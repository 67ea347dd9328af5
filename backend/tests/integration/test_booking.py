"""
Integration tests for appointment creation.
"""

import threading
from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

from core import config
from core.exceptions import (
    BookingWindowError, NotFound, PaymentGatewayError, PaymentVerificationFailed, SlotUnavailable,
)
from models.enums import ActorRole, AppointmentStatus, PaymentStatus, ServicePaymentStatus
from services import appointment_service
from services.appointment_service import AppointmentService, PaymentConfirmation
from services.availability_service import AvailabilityService
from utils.appointment_queries import query_appointments
from utils.datetime_utils import clinic_now
from utils.pricing import payment_breakdown
from tests.conftest import (
    create_appointment, create_provider, create_service, create_weekly_schedule, future_day, sign_payment,
)


@pytest.fixture(autouse=True)
def paid_orders(razorpay_orders, service):
    """Any checkout order is a paid order for the default service and patient unless a test registers its own."""
    razorpay_orders.pay_all(Decimal("590.00"), service.id)
    return razorpay_orders


def _payment(order_id="order_1", payment_id="pay_1", amount=None):
    return PaymentConfirmation(
        order_id=order_id, payment_id=payment_id, signature=sign_payment(order_id, payment_id), amount=amount,
    )


def _book(db_session, provider, service, gateway, day=None, start_time="10:00", patient_id="patient-1", **kwargs):
    kwargs.setdefault("payment", _payment())
    return AppointmentService.create_appointment(
        db_session,
        patient_id=patient_id,
        provider_id=provider.id,
        service_id=service.id,
        appointment_date=day or future_day(),
        start_time=start_time,
        gateway=gateway,
        **kwargs,
    )


class TestCreateAppointment:

    def test_paid_booking_is_confirmed(self, db_session, provider, service, gateway):
        appointment = _book(db_session, provider, service, gateway, patient_name="Ravi Kumar")

        assert appointment.status == AppointmentStatus.CONFIRMED
        assert appointment.payment_status == PaymentStatus.RESERVATION_PAID
        assert appointment.service_payment_status == ServicePaymentStatus.PENDING
        assert appointment.start_time == "10:00"
        assert appointment.end_time == "10:30"
        assert appointment.duration_minutes == 30
        assert appointment.payment_amount == Decimal("590.00")
        assert appointment.service_payment_amount == Decimal("1180.00")
        assert appointment.payment_transaction_id == "pay_1"
        assert appointment.reschedule_count == 0
        assert appointment.max_reschedules == config.DEFAULT_MAX_RESCHEDULES
        assert appointment.provider_name == provider.name
        assert appointment.service_name == service.name
        assert appointment.patient_name == "Ravi Kumar"
        assert appointment.confirmation_number

    def test_slot_disappears_after_booking(self, db_session, provider, service, gateway):
        day = future_day()
        _book(db_session, provider, service, gateway, day=day)

        assert 600 not in AvailabilityService.list_available_slots(db_session, provider.id, day, 30)

    def test_admin_booking_without_payment_is_pending(self, db_session, provider, service, gateway):
        appointment = _book(db_session, provider, service, gateway, actor_role=ActorRole.ADMIN, payment=None)

        assert appointment.status == AppointmentStatus.PENDING
        assert appointment.payment_status == PaymentStatus.PENDING
        assert appointment.payment_amount is None

    def test_patient_booking_requires_payment(self, db_session, provider, service, gateway):
        with pytest.raises(PaymentVerificationFailed):
            _book(db_session, provider, service, gateway, payment=None)

        assert query_appointments(db_session, provider_id=provider.id) == []

    def test_bad_signature_creates_nothing(self, db_session, provider, service, gateway):
        payment = PaymentConfirmation(order_id="order_1", payment_id="pay_1", signature="forged")

        with pytest.raises(PaymentVerificationFailed):
            _book(db_session, provider, service, gateway, payment=payment)

        assert query_appointments(db_session, provider_id=provider.id) == []

    def test_wrong_amount_creates_nothing(self, db_session, provider, service, gateway):
        with pytest.raises(PaymentVerificationFailed):
            _book(db_session, provider, service, gateway, payment=_payment(amount=Decimal("1.00")))

        assert query_appointments(db_session, provider_id=provider.id) == []

    def test_matching_amount_is_accepted(self, db_session, provider, service, gateway):
        appointment = _book(db_session, provider, service, gateway, payment=_payment(amount=Decimal("590.00")))
        assert appointment.status == AppointmentStatus.CONFIRMED

    def test_confirmation_numbers_are_unique(self, db_session, provider, service, gateway):
        day = future_day()
        numbers = {
            _book(db_session, provider, service, gateway, day=day, start_time=start,
                  payment=_payment(order_id=f"order_{start}", payment_id=f"pay_{start}")).confirmation_number
            for start in ("09:00", "09:30", "10:00", "10:30")
        }
        assert len(numbers) == 4

    def test_unknown_provider(self, db_session, service, gateway):
        with pytest.raises(NotFound):
            AppointmentService.create_appointment(
                db_session, "patient-1", "missing", service.id, future_day(), "10:00", payment=_payment(),
                gateway=gateway,
            )

    def test_inactive_service(self, db_session, provider, gateway):
        retired = create_service(db_session, name="Retired", is_active=False)
        with pytest.raises(NotFound):
            _book(db_session, provider, retired, gateway)


class TestPaymentBinding:

    def test_payment_cannot_confirm_a_second_booking(self, db_session, provider, service, gateway):
        day = future_day()
        _book(db_session, provider, service, gateway, day=day, start_time="09:00")

        with pytest.raises(PaymentVerificationFailed):
            _book(db_session, provider, service, gateway, day=day, start_time="11:00")
        with pytest.raises(PaymentVerificationFailed):
            _book(db_session, provider, service, gateway, day=future_day(4), start_time="15:00")

        booked = query_appointments(db_session, patient_id="patient-1")
        assert [(a.start_time, a.payment_transaction_id) for a in booked] == [("09:00", "pay_1")]

    def test_payment_id_reused_with_new_order_is_rejected(self, db_session, provider, service, gateway):
        _book(db_session, provider, service, gateway, start_time="09:00")

        with pytest.raises(PaymentVerificationFailed):
            _book(db_session, provider, service, gateway, start_time="11:00",
                  payment=_payment(order_id="order_2", payment_id="pay_1"))

        assert len(query_appointments(db_session, provider_id=provider.id)) == 1

    def test_payment_committed_concurrently_is_caught_by_unique_ids(
        self, db_session, provider, service, gateway, monkeypatch
    ):
        """The lookup can miss a payment recorded in parallel; the unique columns still refuse it."""
        _book(db_session, provider, service, gateway, start_time="09:00")

        real_lookup = appointment_service.find_appointment_by_payment
        lookups = []

        def misses_first_time(*args):
            lookups.append(args)
            return None if len(lookups) == 1 else real_lookup(*args)

        monkeypatch.setattr(appointment_service, "find_appointment_by_payment", misses_first_time)

        with pytest.raises(PaymentVerificationFailed):
            _book(db_session, provider, service, gateway, day=future_day(4), start_time="11:00")

        assert len(lookups) == 2
        assert len(query_appointments(db_session, provider_id=provider.id)) == 1

    def test_another_patients_order_is_rejected(self, db_session, provider, service, gateway):
        with pytest.raises(PaymentVerificationFailed):
            _book(db_session, provider, service, gateway, patient_id="patient-2")

        assert query_appointments(db_session, provider_id=provider.id) == []

    def test_order_for_another_service_is_rejected(self, db_session, provider, service, gateway, paid_orders):
        other = create_service(db_session, name="Check-up", price=Decimal("200.00"))
        paid_orders.add("order_other", Decimal("590.00"), other.id)

        with pytest.raises(PaymentVerificationFailed):
            _book(db_session, provider, service, gateway, payment=_payment(order_id="order_other"))

        assert query_appointments(db_session, provider_id=provider.id) == []

    def test_cheaper_order_cannot_book_dearer_service(
        self, db_session, provider, service, gateway, paid_orders, monkeypatch
    ):
        monkeypatch.setattr(config, "ENABLE_SERVICE_PAYMENT_ONLINE", True)
        cheap_amount = payment_breakdown(Decimal("200.00")).amount_due_online
        assert cheap_amount < payment_breakdown(service.price).amount_due_online
        # Order notes claim the booked service; the amount gives it away
        paid_orders.add("order_cheap", cheap_amount, service.id)

        with pytest.raises(PaymentVerificationFailed):
            _book(db_session, provider, service, gateway, payment=_payment(order_id="order_cheap"))

        assert query_appointments(db_session, provider_id=provider.id) == []

    def test_unpaid_order_is_rejected(self, db_session, provider, service, gateway, paid_orders):
        paid_orders.add("order_open", Decimal("590.00"), service.id, status="attempted")

        with pytest.raises(PaymentVerificationFailed):
            _book(db_session, provider, service, gateway, payment=_payment(order_id="order_open"))

        assert query_appointments(db_session, provider_id=provider.id) == []

    def test_unknown_order_creates_nothing(self, db_session, provider, service, gateway, paid_orders):
        paid_orders.default = None

        with pytest.raises(PaymentGatewayError):
            _book(db_session, provider, service, gateway)

        assert paid_orders.route.called
        assert query_appointments(db_session, provider_id=provider.id) == []

    def test_client_amount_is_not_trusted(self, db_session, provider, service, gateway, paid_orders):
        paid_orders.add("order_small", Decimal("1.00"), service.id)

        with pytest.raises(PaymentVerificationFailed):
            _book(db_session, provider, service, gateway,
                  payment=_payment(order_id="order_small", amount=Decimal("590.00")))

        assert query_appointments(db_session, provider_id=provider.id) == []


class TestBookingWindow:

    def test_past_date_is_rejected(self, db_session, provider, service, gateway):
        with pytest.raises(BookingWindowError):
            _book(db_session, provider, service, gateway, day=clinic_now().date() - timedelta(days=1))

    def test_beyond_window_is_rejected_for_patients(self, db_session, provider, service, gateway, monkeypatch):
        monkeypatch.setattr(config, "MAX_BOOKING_WINDOW_DAYS", 7)
        with pytest.raises(BookingWindowError):
            _book(db_session, provider, service, gateway, day=future_day(8))

    def test_admin_may_book_beyond_window(self, db_session, provider, service, gateway, monkeypatch):
        monkeypatch.setattr(config, "MAX_BOOKING_WINDOW_DAYS", 7)
        appointment = _book(
            db_session, provider, service, gateway, day=future_day(8), actor_role=ActorRole.ADMIN, payment=None,
        )
        assert appointment.appointment_date == future_day(8)

    def test_last_day_of_window_is_bookable(self, db_session, provider, service, gateway, monkeypatch):
        monkeypatch.setattr(config, "MAX_BOOKING_WINDOW_DAYS", 7)
        appointment = _book(db_session, provider, service, gateway, day=future_day(7))
        assert appointment.status == AppointmentStatus.CONFIRMED


class TestDoubleBooking:

    def test_same_slot_twice(self, db_session, provider, service, gateway):
        day = future_day()
        _book(db_session, provider, service, gateway, day=day)

        with pytest.raises(SlotUnavailable):
            _book(db_session, provider, service, gateway, day=day, patient_id="patient-2",
                  payment=_payment(order_id="order_2", payment_id="pay_2"))

        assert len(query_appointments(db_session, provider_id=provider.id)) == 1

    def test_overlapping_longer_service(self, db_session, provider, service, gateway):
        day = future_day()
        _book(db_session, provider, service, gateway, day=day)
        long_service = create_service(db_session, name="Root canal", duration_minutes=60)

        with pytest.raises(SlotUnavailable):
            _book(db_session, provider, long_service, gateway, day=day, start_time="09:30",
                  actor_role=ActorRole.ADMIN, payment=None)

    def test_adjacent_slots_are_fine(self, db_session, provider, service, gateway):
        day = future_day()
        _book(db_session, provider, service, gateway, day=day, start_time="10:00")
        second = _book(db_session, provider, service, gateway, day=day, start_time="10:30",
                       payment=_payment(order_id="order_2", payment_id="pay_2"))

        assert second.start_time == "10:30"

    def test_off_grid_and_break_slots_are_rejected(self, db_session, provider, service, gateway):
        for start in ("10:15", "13:00", "16:45", "25:00"):
            with pytest.raises(SlotUnavailable):
                _book(db_session, provider, service, gateway, start_time=start)

    def test_cancelled_slot_can_be_rebooked(self, db_session, provider, service, gateway):
        day = future_day()
        create_appointment(db_session, provider, service, day, "10:00", status=AppointmentStatus.CANCELLED)

        appointment = _book(db_session, provider, service, gateway, day=day)
        assert appointment.status == AppointmentStatus.CONFIRMED

    def test_stale_precheck_is_caught_under_lock(self, db_session, provider, service, gateway, monkeypatch):
        """A slot taken between the pre-check and the write is rejected by the locked re-check."""
        day = future_day()
        create_appointment(db_session, provider, service, day, "10:00", patient_id="patient-2")

        real_is_available = AvailabilityService.is_available
        calls = []

        def stale_then_real(*args, **kwargs):
            calls.append(args)
            if len(calls) == 1:
                return True
            return real_is_available(*args, **kwargs)

        monkeypatch.setattr(AvailabilityService, "is_available", staticmethod(stale_then_real))

        with pytest.raises(SlotUnavailable):
            _book(db_session, provider, service, gateway, day=day)

        assert len(calls) == 2
        assert len(query_appointments(db_session, provider_id=provider.id)) == 1


class TestConcurrentBooking:

    def test_parallel_bookings_for_one_slot(self, concurrent_engine):
        Session = sessionmaker(bind=concurrent_engine, autocommit=False, autoflush=False, expire_on_commit=False)
        with Session() as setup:
            provider = create_provider(setup)
            create_weekly_schedule(setup, provider)
            service = create_service(setup)
            provider_id, service_id = provider.id, service.id

        day = future_day()
        barrier = threading.Barrier(5)
        outcomes = []

        def attempt(index):
            session = Session()
            try:
                barrier.wait()
                AppointmentService.create_appointment(
                    session, f"patient-{index}", provider_id, service_id, day, "10:00",
                    actor_role=ActorRole.ADMIN,
                )
                outcomes.append("booked")
            except SlotUnavailable:
                outcomes.append("rejected")
            finally:
                session.close()

        threads = [threading.Thread(target=attempt, args=(i,)) for i in range(5)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert sorted(outcomes) == ["booked", "rejected", "rejected", "rejected", "rejected"]
        with Session() as check:
            assert len(query_appointments(check, provider_id=provider_id)) == 1
