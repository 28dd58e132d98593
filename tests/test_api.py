from datetime import date, timedelta


def _booking_body(seeded, student=None, seat=None):
    return {
        "studentId": str((student or seeded.student).id),
        "libraryId": str(seeded.library.id),
        "planId": str(seeded.plan.id),
        "timeSlotId": str(seeded.slot.id),
        "seatId": str((seat or seeded.seat).id),
        "totalAmount": "1000.00",
    }


def test_health(client):
    assert client.get("/health").json()["success"] is True
    assert client.get("/api/v1/health").json()["data"]["api_version"] == "v1"


def test_create_booking_returns_201_envelope(client, seeded):
    response = client.post("/api/v1/bookings", json=_booking_body(seeded))

    assert response.status_code == 201
    body = response.json()
    assert body["success"] is True
    assert body["message"] == "Booking created successfully"
    assert body["data"]["status"] == "ACTIVE"
    assert body["data"]["timeSlot"]["bookedCount"] == 1


def test_double_booking_is_409(client, seeded):
    client.post("/api/v1/bookings", json=_booking_body(seeded, student=seeded.students[0]))

    response = client.post("/api/v1/bookings", json=_booking_body(seeded, student=seeded.students[1]))

    assert response.status_code == 409
    body = response.json()
    assert body["success"] is False
    assert body["error"] == "seat_unavailable"


def test_missing_fields_is_400(client, seeded):
    body = _booking_body(seeded)
    del body["planId"]

    response = client.post("/api/v1/bookings", json=body)

    assert response.status_code == 400
    assert response.json()["error"] == "missing_fields"


def test_malformed_body_is_400_envelope(client, seeded):
    body = _booking_body(seeded)
    body["seatId"] = "not-a-uuid"

    response = client.post("/api/v1/bookings", json=body)

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert response.json()["error"] == "validation_error"


def test_unknown_student_is_404(client, seeded):
    body = _booking_body(seeded)
    body["studentId"] = "00000000-0000-0000-0000-000000000000"

    response = client.post("/api/v1/bookings", json=body)

    assert response.status_code == 404
    assert response.json()["error"] == "student_not_found"


def test_get_and_cancel_booking(client, seeded):
    booking_id = client.post("/api/v1/bookings", json=_booking_body(seeded)).json()["data"]["id"]

    assert client.get(f"/api/v1/bookings/{booking_id}").json()["data"]["id"] == booking_id

    first = client.delete(f"/api/v1/bookings/{booking_id}")
    assert first.status_code == 200
    assert first.json()["message"] == "Booking cancelled successfully"
    assert first.json()["data"]["timeSlot"]["bookedCount"] == 0

    second = client.delete(f"/api/v1/bookings/{booking_id}")
    assert second.status_code == 200
    assert second.json()["message"] == "Booking already cancelled"


def test_cancel_missing_booking_is_404(client, seeded):
    response = client.delete("/api/v1/bookings/00000000-0000-0000-0000-000000000000")
    assert response.status_code == 404


def test_patch_status(client, seeded):
    booking_id = client.post("/api/v1/bookings", json=_booking_body(seeded)).json()["data"]["id"]

    bad = client.patch(f"/api/v1/bookings/{booking_id}/status", json={"status": "PAUSED"})
    assert bad.status_code == 400
    assert bad.json()["error"] == "invalid_status"

    done = client.patch(f"/api/v1/bookings/{booking_id}/status", json={"status": "COMPLETED"})
    assert done.status_code == 200
    assert done.json()["data"]["checkOutTime"] is not None

    back = client.patch(f"/api/v1/bookings/{booking_id}/status", json={"status": "ACTIVE"})
    assert back.status_code == 409
    assert back.json()["error"] == "invalid_transition"


def test_available_seats(client, seeded):
    client.post("/api/v1/bookings", json=_booking_body(seeded))

    response = client.get("/api/v1/bookings/available", params={
        "libraryId": str(seeded.library.id),
        "date": seeded.slot.date.isoformat(),
        "startTime": "09:00",
        "endTime": "13:00",
    })

    assert response.status_code == 200
    assert [seat["seatNumber"] for seat in response.json()["data"]] == ["A2"]


def test_available_time_slots(client, seeded):
    response = client.get("/api/v1/timeslots/available", params={
        "libraryId": str(seeded.library.id),
        "date": seeded.slot.date.isoformat(),
    })

    assert response.status_code == 200
    (slot,) = response.json()["data"]
    assert slot["availableSpots"] == 2
    assert slot["isBookable"] is True
    assert slot["startTime"] == "09:00:00"


def test_available_time_slots_past_date_is_400(client, seeded):
    response = client.get("/api/v1/timeslots/available", params={
        "libraryId": str(seeded.library.id),
        "date": (date.today() - timedelta(days=1)).isoformat(),
    })

    assert response.status_code == 400
    assert response.json()["error"] == "past_date"


def test_create_and_get_time_slot(client, seeded):
    response = client.post("/api/v1/timeslots", json={
        "libraryId": str(seeded.library.id),
        "date": seeded.slot.date.isoformat(),
        "startTime": "14:00",
        "endTime": "18:00",
        "capacity": 4,
    })

    assert response.status_code == 201
    slot_id = response.json()["data"]["id"]
    fetched = client.get(f"/api/v1/timeslots/{slot_id}").json()["data"]
    assert fetched["capacity"] == 4
    assert fetched["bookedCount"] == 0


def test_overlapping_time_slot_is_409(client, seeded):
    response = client.post("/api/v1/timeslots", json={
        "libraryId": str(seeded.library.id),
        "date": seeded.slot.date.isoformat(),
        "startTime": "12:00",
        "endTime": "15:00",
        "capacity": 4,
    })

    assert response.status_code == 409
    assert response.json()["error"] == "slot_overlap"


def test_order_webhook_and_payout_flow(client, gateway, seeded):
    client.post("/api/v1/payments/payout-account", json={
        "librarianId": str(seeded.librarian.id),
        "accountHolderName": "Asha Rao",
        "ifsc": "HDFC0000001",
        "accountNumber": "50100012345678",
    })
    order = client.post("/api/v1/payments/create-order", json={
        "librarianId": str(seeded.librarian.id),
        "studentId": str(seeded.student.id),
        "amount": 1000,
    }).json()["data"]
    assert order["amountMinor"] == 100000

    webhook = {
        "event": "payment.captured",
        "razorpay_order_id": order["orderId"],
        "razorpay_payment_id": "pay_api0001",
        "razorpay_signature": gateway.sign(order["orderId"], "pay_api0001"),
        "student_id": str(seeded.student.id),
        "librarianId": str(seeded.librarian.id),
    }
    response = client.post("/api/v1/payments/webhook", json=webhook)

    assert response.status_code == 200
    assert response.json()["data"]["status"] == "TRANSFERRED"
    assert gateway.payouts[0]["payload"]["amount"] == 90000

    replay = client.post("/api/v1/payments/webhook", json=webhook)
    assert replay.status_code == 200
    assert replay.json()["message"] == "Payment already processed"
    assert len(gateway.payouts) == 1


def test_webhook_bad_signature_is_401(client, gateway, seeded):
    order = client.post("/api/v1/payments/create-order", json={
        "librarianId": str(seeded.librarian.id),
        "studentId": str(seeded.student.id),
        "amount": 250,
    }).json()["data"]

    response = client.post("/api/v1/payments/webhook", json={
        "event": "payment.captured",
        "razorpay_order_id": order["orderId"],
        "razorpay_payment_id": "pay_api0002",
        "razorpay_signature": "deadbeef",
        "student_id": str(seeded.student.id),
        "librarianId": str(seeded.librarian.id),
    })

    assert response.status_code == 401
    assert response.json()["error"] == "signature_mismatch"


def test_webhook_non_ascii_signature_is_401(client, gateway, seeded):
    order = client.post("/api/v1/payments/create-order", json={
        "librarianId": str(seeded.librarian.id),
        "studentId": str(seeded.student.id),
        "amount": 250,
    }).json()["data"]

    response = client.post("/api/v1/payments/webhook", json={
        "event": "payment.captured",
        "razorpay_order_id": order["orderId"],
        "razorpay_payment_id": "pay_api0003",
        "razorpay_signature": "déadbeef",
        "student_id": str(seeded.student.id),
        "librarianId": str(seeded.librarian.id),
    })

    assert response.status_code == 401
    assert response.json()["error"] == "signature_mismatch"


def test_order_failed_and_retry_payout(client, gateway, seeded):
    order = client.post("/api/v1/payments/create-order", json={
        "librarianId": str(seeded.librarian.id),
        "studentId": str(seeded.student.id),
        "amount": 500,
    }).json()["data"]

    failed = client.post("/api/v1/payments/order-failed", json={"razorpay_order_id": order["orderId"], "reason": "cancelled"})
    assert failed.status_code == 200
    assert failed.json()["data"]["status"] == "FAILED"

    retry = client.post(f"/api/v1/payments/{order['paymentId']}/retry-payout")
    assert retry.status_code == 409
    assert retry.json()["error"] == "payout_not_allowed"


def test_create_order_gateway_down_is_502(client, gateway, seeded):
    gateway.fail_orders = True

    response = client.post("/api/v1/payments/create-order", json={
        "librarianId": str(seeded.librarian.id),
        "studentId": str(seeded.student.id),
        "amount": 1000,
    })

    assert response.status_code == 502
    assert response.json()["error"] == "order_creation_failed"


def test_update_block_and_delete_time_slot(client, seeded):
    slot_id = str(seeded.slot.id)

    blocked = client.put(f"/api/v1/timeslots/{slot_id}", json={"status": "BLOCKED", "capacity": 3})
    assert blocked.status_code == 200
    assert blocked.json()["data"]["status"] == "BLOCKED"
    assert blocked.json()["data"]["capacity"] == 3

    booking = client.post("/api/v1/bookings", json=_booking_body(seeded))
    assert booking.status_code == 409
    assert booking.json()["error"] == "slot_unavailable"

    bad = client.put(f"/api/v1/timeslots/{slot_id}", json={"status": "BOOKED"})
    assert bad.status_code == 400
    assert bad.json()["error"] == "invalid_status"

    deleted = client.delete(f"/api/v1/timeslots/{slot_id}")
    assert deleted.status_code == 200
    assert client.get(f"/api/v1/timeslots/{slot_id}").status_code == 404


def test_booked_slot_cannot_be_retimed_or_deleted(client, seeded):
    client.post("/api/v1/bookings", json=_booking_body(seeded))
    slot_id = str(seeded.slot.id)

    retime = client.put(f"/api/v1/timeslots/{slot_id}", json={"endTime": "12:00"})
    assert retime.status_code == 409
    assert retime.json()["error"] == "slot_has_bookings"

    delete = client.delete(f"/api/v1/timeslots/{slot_id}")
    assert delete.status_code == 409
    assert delete.json()["error"] == "slot_has_bookings"


def test_library_time_slots(client, seeded):
    client.post("/api/v1/bookings", json=_booking_body(seeded))

    response = client.get(f"/api/v1/timeslots/library/{seeded.library.id}")

    assert response.status_code == 200
    (slot,) = response.json()["data"]
    assert slot["bookedCount"] == 1
    assert slot["availableSpots"] == 1

    missing = client.get("/api/v1/timeslots/library/00000000-0000-0000-0000-000000000000")
    assert missing.status_code == 404
    assert missing.json()["error"] == "library_not_found"
