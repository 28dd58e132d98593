import uuid
from decimal import Decimal

import pytest
from sqlalchemy.orm import sessionmaker

import app.services.booking_service as booking_module
from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models import Booking, BookingStatus, BookingStatusHistory, Library, Plan, Seat, SeatStatus, TimeSlot, TimeSlotStatus
from app.services.booking_lifecycle_service import BookingLifecycleService
from app.services.booking_service import BookingService, booking_summary

from tests.conftest import make_engine, seed_library


def _book(db, seeded, student=None, seat=None, slot=None, amount="1000.00"):
    return BookingService(db).create_booking(
        student_id=(student or seeded.student).id,
        library_id=seeded.library.id,
        plan_id=seeded.plan.id,
        time_slot_id=(slot or seeded.slot).id,
        seat_id=(seat or seeded.seat).id,
        total_amount=amount,
    )


def test_create_booking_reserves_seat_and_counts_slot(db, seeded):
    booking = _book(db, seeded)

    assert booking.status == BookingStatus.ACTIVE.value
    assert booking.valid_from == seeded.slot.date
    assert booking.valid_to == seeded.slot.date
    assert booking.total_amount == Decimal("1000.00")

    db.refresh(seeded.slot)
    db.refresh(seeded.seat)
    assert seeded.slot.booked_count == 1
    assert seeded.slot.status == TimeSlotStatus.AVAILABLE.value
    assert seeded.seat.status == SeatStatus.RESERVED.value

    history = db.query(BookingStatusHistory).filter_by(booking_id=booking.id).all()
    assert [(h.from_status, h.to_status) for h in history] == [(None, "ACTIVE")]


def test_filling_last_spot_marks_slot_booked(db, seeded):
    _book(db, seeded, student=seeded.students[0], seat=seeded.seats[0])
    _book(db, seeded, student=seeded.students[1], seat=seeded.seats[1])

    db.refresh(seeded.slot)
    assert seeded.slot.booked_count == seeded.slot.capacity == 2
    assert seeded.slot.status == TimeSlotStatus.BOOKED.value


def test_booking_summary_includes_related_rows(db, seeded):
    summary = booking_summary(_book(db, seeded))

    assert summary["status"] == "ACTIVE"
    assert summary["seat"]["seatNumber"] == "A1"
    assert summary["student"]["email"] == "ravi@example.com"
    assert summary["timeSlot"]["startTime"] == "09:00"
    assert summary["timeSlot"]["bookedCount"] == 1
    assert summary["totalAmount"] == "1000.00"


def test_missing_fields_rejected_before_lookups(db, seeded):
    with pytest.raises(ValidationError) as exc:
        BookingService(db).create_booking(seeded.student.id, seeded.library.id, None, seeded.slot.id, seeded.seat.id, "10")
    assert exc.value.code == "missing_fields"


def test_negative_amount_rejected(db, seeded):
    with pytest.raises(ValidationError) as exc:
        _book(db, seeded, amount="-1")
    assert exc.value.code == "invalid_amount"


@pytest.mark.parametrize("amount", ["100000000", "1.234", "-0.01", "NaN"])
def test_unstorable_amount_rejected_before_any_write(db, seeded, amount):
    with pytest.raises(ValidationError) as exc:
        _book(db, seeded, amount=amount)
    assert exc.value.code == "invalid_amount"
    assert db.query(Booking).count() == 0
    db.refresh(seeded.slot)
    assert seeded.slot.booked_count == 0


def test_zero_amount_booking_allowed(db, seeded):
    assert _book(db, seeded, amount="0").total_amount == Decimal("0.00")


@pytest.mark.parametrize("field,entity", [("student_id", "student"), ("library_id", "library"), ("plan_id", "plan")])
def test_unknown_references_are_not_found(db, seeded, field, entity):
    kwargs = dict(
        student_id=seeded.student.id,
        library_id=seeded.library.id,
        plan_id=seeded.plan.id,
        time_slot_id=seeded.slot.id,
        seat_id=seeded.seat.id,
        total_amount="1000",
    )
    kwargs[field] = uuid.uuid4()
    with pytest.raises(NotFoundError) as exc:
        BookingService(db).create_booking(**kwargs)
    assert exc.value.code == f"{entity}_not_found"


def test_plan_of_another_library_is_not_found(db, seeded):
    other = Library(librarian_id=seeded.librarian.id, library_name="Elsewhere")
    db.add(other)
    db.flush()
    foreign_plan = Plan(library_id=other.id, plan_name="Other", days=1, price=Decimal("10"))
    db.add(foreign_plan)
    db.commit()

    with pytest.raises(NotFoundError) as exc:
        BookingService(db).create_booking(
            seeded.student.id, seeded.library.id, foreign_plan.id, seeded.slot.id, seeded.seat.id, "10"
        )
    assert exc.value.code == "plan_not_found"


def test_blocked_slot_is_unavailable(db, seeded):
    seeded.slot.status = TimeSlotStatus.BLOCKED.value
    db.commit()

    with pytest.raises(ConflictError) as exc:
        _book(db, seeded)
    assert exc.value.code == "slot_unavailable"


def test_seat_under_maintenance_is_unavailable(db, seeded):
    seeded.seat.status = SeatStatus.MAINTENANCE.value
    db.commit()

    with pytest.raises(ConflictError) as exc:
        _book(db, seeded)
    assert exc.value.code == "seat_unavailable"


def test_seat_from_another_library_is_unavailable(db, seeded):
    other = Library(librarian_id=seeded.librarian.id, library_name="Elsewhere")
    db.add(other)
    db.flush()
    stray_seat = Seat(library_id=other.id, seat_number="Z9")
    db.add(stray_seat)
    db.commit()

    with pytest.raises(ConflictError) as exc:
        _book(db, seeded, seat=stray_seat)
    assert exc.value.code == "seat_unavailable"


def test_seat_already_booked_in_same_slot(db, seeded):
    _book(db, seeded, student=seeded.students[0])
    # Seat status is only a hint; free it to reach the bookings check
    seeded.seat.status = SeatStatus.AVAILABLE.value
    db.commit()

    with pytest.raises(ConflictError) as exc:
        _book(db, seeded, student=seeded.students[1])
    assert exc.value.code == "seat_already_booked"

    db.refresh(seeded.slot)
    assert seeded.slot.booked_count == 1


def test_unique_index_backs_up_the_availability_check(db, seeded, monkeypatch):
    db.add(Booking(
        student_id=seeded.students[1].id,
        library_id=seeded.library.id,
        plan_id=seeded.plan.id,
        time_slot_id=seeded.slot.id,
        seat_id=seeded.seat.id,
        status=BookingStatus.ACTIVE.value,
        valid_from=seeded.slot.date,
        valid_to=seeded.slot.date,
        total_amount=Decimal("1000"),
    ))
    db.commit()
    monkeypatch.setattr(BookingService, "_check_not_booked", lambda self, seat_id, slot_id: None)

    with pytest.raises(ConflictError) as exc:
        _book(db, seeded)
    assert exc.value.code == "duplicate_booking"
    assert db.query(Booking).count() == 1


def test_cancelled_booking_does_not_hold_the_seat(db, seeded):
    first = _book(db, seeded, student=seeded.students[0])
    BookingLifecycleService(db).cancel_booking(first.id)

    second = _book(db, seeded, student=seeded.students[1])
    assert second.status == BookingStatus.ACTIVE.value
    db.refresh(seeded.slot)
    assert seeded.slot.booked_count == 1


def test_get_booking_not_found(db, seeded):
    with pytest.raises(NotFoundError) as exc:
        BookingService(db).get_booking(uuid.uuid4())
    assert exc.value.code == "booking_not_found"


class TestConcurrentBooking:
    """Two sessions racing for the same slot; the competitor commits while the
    first request is between its prechecks and the row lock."""

    @pytest.fixture
    def sessions(self, tmp_path):
        engine = make_engine(f"sqlite:///{tmp_path / 'race.db'}")
        Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)
        first, second = Session(), Session()
        yield first, second
        first.close()
        second.close()
        engine.dispose()

    def _race(self, monkeypatch, first, second, seeded, competitor_seat):
        original_lock = booking_module.lock_time_slot
        state = {"raced": False}

        def lock_after_competitor(db, time_slot_id):
            if not state["raced"] and db is first:
                state["raced"] = True
                BookingService(second).create_booking(
                    seeded.students[1].id, seeded.library.id, seeded.plan.id,
                    seeded.slot.id, competitor_seat.id, "1000",
                )
            return original_lock(db, time_slot_id)

        monkeypatch.setattr(booking_module, "lock_time_slot", lock_after_competitor)
        return BookingService(first).create_booking(
            seeded.students[0].id, seeded.library.id, seeded.plan.id,
            seeded.slot.id, seeded.seats[0].id, "1000",
        )

    def test_same_seat_exactly_one_wins(self, sessions, monkeypatch):
        first, second = sessions
        seeded = seed_library(first, capacity=1, seat_count=1)

        with pytest.raises(ConflictError) as exc:
            self._race(monkeypatch, first, second, seeded, competitor_seat=seeded.seats[0])
        assert exc.value.code == "seat_already_booked"

        first.expire_all()
        slot = first.get(TimeSlot, seeded.slot.id)
        assert first.query(Booking).count() == 1
        assert slot.booked_count == 1
        assert slot.status == TimeSlotStatus.BOOKED.value
        assert first.get(Seat, seeded.seats[0].id).status == SeatStatus.RESERVED.value

    def test_last_spot_goes_to_one_of_two_seats(self, sessions, monkeypatch):
        first, second = sessions
        seeded = seed_library(first, capacity=1, seat_count=2)

        with pytest.raises(ConflictError) as exc:
            self._race(monkeypatch, first, second, seeded, competitor_seat=seeded.seats[1])
        assert exc.value.code == "slot_unavailable"

        first.expire_all()
        slot = first.get(TimeSlot, seeded.slot.id)
        assert slot.booked_count == 1 <= slot.capacity
        assert first.get(Seat, seeded.seats[0].id).status == SeatStatus.AVAILABLE.value
