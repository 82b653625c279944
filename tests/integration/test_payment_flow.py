import pytest
from sqlalchemy import func, select

from src.application import payment_service
from src.infrastructure.db.models import Booking, Payment, Ticket
from src.infrastructure.repositories.payment_repository import PaymentRepository
from src.infrastructure.repositories.ticket_repository import TicketRepository


HEADERS = {"RT-UDDOKTAPAY-API-KEY": "test-uddoktapay-key"}


def _initiate(client, booking_id, amount=500):
    return client.post(
        "/payments/initiate",
        json={
            "booking_id": booking_id,
            "amount": amount,
            "customer_name": "Rahim",
            "customer_phone": "01712345678",
            "redirect_url": "https://babyworld.example/success",
            "cancel_url": "https://babyworld.example/cancel",
        },
    )


def _completed(invoice_id, **extra):
    payload = {
        "status": "COMPLETED",
        "invoice_id": "provider-side-id",
        "metadata": {"invoice_id": invoice_id},
        "payment_method": "bkash",
        "sender_number": "01812345678",
        "transaction_id": "TRX123",
        "fee": "12.50",
        "date": "2025-06-01 10:15:00",
    }
    payload.update(extra)
    return payload


def _state(session_factory, invoice_id):
    with session_factory() as db:
        payment = db.execute(
            select(Payment).where(Payment.invoice_id == invoice_id)
        ).scalar_one()
        booking = db.get(Booking, payment.booking_id)
        tickets = db.execute(
            select(func.count()).select_from(Ticket).where(Ticket.booking_id == booking.id)
        ).scalar_one()
        return {
            "payment_status": payment.status,
            "transaction_id": payment.transaction_id,
            "fee": payment.fee,
            "booking_status": booking.status,
            "booking_payment_status": booking.payment_status,
            "tickets": tickets,
        }


def test_initiate_payment(client, booking_id, gateway, session_factory):
    response = _initiate(client, booking_id)

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["invoice_id"].startswith("BW-")
    assert body["payment_url"].endswith(body["invoice_id"])

    request = gateway.checkouts[0]
    assert request.booking_id == booking_id
    assert request.webhook_url == "http://localhost:8000/payments/webhook"

    state = _state(session_factory, body["invoice_id"])
    assert state["payment_status"] == "pending"
    assert state["booking_payment_status"] == "pending"


def test_initiate_for_missing_booking_creates_nothing(client, session_factory, gateway):
    response = _initiate(client, "no-such-booking")

    assert response.status_code == 404
    assert response.json()["detail"]["code"] == "BOOKING_NOT_FOUND"
    assert gateway.checkouts == []
    with session_factory() as db:
        assert db.execute(select(func.count()).select_from(Payment)).scalar_one() == 0


def test_provider_failure_creates_no_payment(client, booking_id, gateway, session_factory):
    gateway.fail_checkout = True

    response = _initiate(client, booking_id)

    assert response.status_code == 502
    assert response.json() == {"success": False, "error": "Payment initiation failed"}
    with session_factory() as db:
        assert db.execute(select(func.count()).select_from(Payment)).scalar_one() == 0


def test_initiate_rejects_non_positive_amount(client, booking_id):
    response = _initiate(client, booking_id, amount=0)

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "INVALID_AMOUNT"


def test_webhook_completes_payment_once(client, booking_id, session_factory, sms):
    invoice_id = _initiate(client, booking_id).json()["invoice_id"]
    sent_before = len(sms.sent)

    first = client.post("/payments/webhook", json=_completed(invoice_id), headers=HEADERS)
    second = client.post("/payments/webhook", json=_completed(invoice_id), headers=HEADERS)

    assert first.status_code == 200
    assert first.json() == {"success": True}
    assert second.status_code == 200

    state = _state(session_factory, invoice_id)
    assert state["payment_status"] == "completed"
    assert state["transaction_id"] == "TRX123"
    assert float(state["fee"]) == 12.5
    assert state["booking_status"] == "confirmed"
    assert state["booking_payment_status"] == "paid"
    assert state["tickets"] == 1

    # Redelivery changes nothing and notifies nobody.
    assert len(sms.sent) == sent_before + 1


@pytest.mark.parametrize("order", [("webhook", "verify"), ("verify", "webhook")])
def test_webhook_and_verify_converge(client, booking_id, gateway, session_factory, sms, order):
    invoice_id = _initiate(client, booking_id).json()["invoice_id"]
    gateway.verifications[invoice_id] = _completed(invoice_id)
    sent_before = len(sms.sent)

    for step in order:
        if step == "webhook":
            response = client.post(
                "/payments/webhook",
                json=_completed(invoice_id),
                headers=HEADERS,
            )
        else:
            response = client.post("/payments/verify", json={"invoice_id": invoice_id})
        assert response.status_code == 200

    state = _state(session_factory, invoice_id)
    assert state == {
        "payment_status": "completed",
        "transaction_id": "TRX123",
        "fee": state["fee"],
        "booking_status": "confirmed",
        "booking_payment_status": "paid",
        "tickets": 1,
    }
    assert float(state["fee"]) == 12.5
    assert len(sms.sent) == sent_before + 1


def test_verify_returns_payment_and_provider_answer(client, booking_id, gateway):
    invoice_id = _initiate(client, booking_id).json()["invoice_id"]
    gateway.verifications[invoice_id] = _completed(invoice_id)

    response = client.post("/payments/verify", json={"invoice_id": invoice_id})

    assert response.status_code == 200
    payment = response.json()["payment"]
    assert payment["status"] == "completed"
    assert payment["amount"] == 500.0
    assert payment["payment_method"] == "bkash"
    assert payment["verification"]["status"] == "COMPLETED"
    assert gateway.verify_calls == [invoice_id]


def test_verify_pending_leaves_payment_pending(client, booking_id, session_factory):
    invoice_id = _initiate(client, booking_id).json()["invoice_id"]

    response = client.post("/payments/verify", json={"invoice_id": invoice_id})

    assert response.status_code == 200
    assert response.json()["payment"]["status"] == "pending"
    assert _state(session_factory, invoice_id)["booking_payment_status"] == "pending"


def test_verify_unknown_invoice(client):
    assert client.post("/payments/verify", json={"invoice_id": "BW-0-NOPE"}).status_code == 404
    assert client.post("/payments/verify", json={}).status_code == 400


def test_failed_payment_keeps_booking_pending(client, booking_id, session_factory, sms):
    invoice_id = _initiate(client, booking_id).json()["invoice_id"]
    sent_before = len(sms.sent)

    response = client.post(
        "/payments/webhook",
        json=_completed(invoice_id, status="CANCELLED"),
        headers=HEADERS,
    )

    assert response.status_code == 200
    state = _state(session_factory, invoice_id)
    assert state["payment_status"] == "failed"
    assert state["booking_status"] == "pending"
    assert state["booking_payment_status"] == "failed"
    assert state["tickets"] == 0
    assert len(sms.sent) == sent_before

    # A completed report after the failure is ignored.
    client.post("/payments/webhook", json=_completed(invoice_id), headers=HEADERS)
    assert _state(session_factory, invoice_id)["payment_status"] == "failed"


def test_unrecognised_status_stays_pending(client, booking_id, session_factory):
    invoice_id = _initiate(client, booking_id).json()["invoice_id"]

    response = client.post(
        "/payments/webhook",
        json=_completed(invoice_id, status="REFUND_REQUESTED"),
        headers=HEADERS,
    )

    assert response.status_code == 200
    assert _state(session_factory, invoice_id)["payment_status"] == "pending"


def test_webhook_for_unknown_invoice_is_acknowledged(client):
    response = client.post(
        "/payments/webhook",
        json=_completed("BW-1-UNKNOWN"),
        headers=HEADERS,
    )

    assert response.status_code == 200
    assert response.json() == {"success": True}


def test_webhook_without_invoice_id(client):
    response = client.post("/payments/webhook", json={"status": "COMPLETED"}, headers=HEADERS)

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "MISSING_FIELD"


def test_webhook_requires_api_key(client, booking_id, session_factory):
    invoice_id = _initiate(client, booking_id).json()["invoice_id"]

    missing = client.post("/payments/webhook", json=_completed(invoice_id))
    wrong = client.post(
        "/payments/webhook",
        json=_completed(invoice_id),
        headers={"RT-UDDOKTAPAY-API-KEY": "guess"},
    )

    assert missing.status_code == 401
    assert wrong.status_code == 401
    assert _state(session_factory, invoice_id)["payment_status"] == "pending"


def test_cash_payment_confirms_booking(client, booking_id, session_factory, sms):
    response = client.post("/payments/cash", json={"booking_id": booking_id, "amount": 500})

    assert response.status_code == 200
    payment = response.json()["payment"]
    assert payment["status"] == "completed"
    assert payment["payment_method"] == "cash"

    state = _state(session_factory, payment["invoice_id"])
    assert state["booking_status"] == "confirmed"
    assert state["booking_payment_status"] == "paid"
    assert state["tickets"] == 1

    again = client.post("/payments/cash", json={"booking_id": booking_id, "amount": 500})
    assert again.status_code == 409
    assert again.json()["detail"]["code"] == "BOOKING_NOT_PAYABLE"


def test_cannot_pay_cancelled_booking(client, booking_id):
    client.post(f"/bookings/{booking_id}/cancel")

    response = _initiate(client, booking_id)

    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "BOOKING_NOT_PAYABLE"


def _payment_messages(sms):
    return [message for _, message in sms.sent if "payment successful" in message]


def test_superseded_invoice_does_not_touch_booking(client, booking_id, session_factory, sms):
    older = _initiate(client, booking_id).json()["invoice_id"]
    latest = _initiate(client, booking_id).json()["invoice_id"]

    response = client.post("/payments/webhook", json=_completed(older), headers=HEADERS)

    assert response.status_code == 200
    state = _state(session_factory, older)
    assert state["payment_status"] == "completed"
    assert state["booking_status"] == "pending"
    assert state["booking_payment_status"] == "pending"
    assert state["tickets"] == 0
    assert _payment_messages(sms) == []

    client.post(
        "/payments/webhook",
        json=_completed(latest, status="FAILED"),
        headers=HEADERS,
    )
    state = _state(session_factory, latest)
    assert state["booking_status"] == "pending"
    assert state["booking_payment_status"] == "failed"


def test_lost_settlement_race_changes_nothing(client, booking_id, session_factory, sms, monkeypatch):
    invoice_id = _initiate(client, booking_id).json()["invoice_id"]
    original = PaymentRepository.settle

    def settle_after_other_writer(self, payment_id, **kwargs):
        # A concurrent verify settles the payment between our read and our write.
        with session_factory() as other:
            other.get(Payment, payment_id).status = "completed"
            other.commit()
        return original(self, payment_id, **kwargs)

    monkeypatch.setattr(PaymentRepository, "settle", settle_after_other_writer)

    response = client.post("/payments/webhook", json=_completed(invoice_id), headers=HEADERS)

    assert response.status_code == 200
    state = _state(session_factory, invoice_id)
    assert state["payment_status"] == "completed"
    assert state["transaction_id"] is None
    assert state["booking_status"] == "pending"
    assert state["booking_payment_status"] == "pending"
    assert state["tickets"] == 0
    assert _payment_messages(sms) == []


def test_ticket_conflict_during_webhook_is_retryable(client, booking_id, session_factory, sms, monkeypatch):
    invoice_id = _initiate(client, booking_id).json()["invoice_id"]
    with session_factory() as db:
        booking = db.get(Booking, booking_id)
        db.add(
            Ticket(
                ticket_number="TKEARLY",
                booking_id=booking_id,
                slot_date=booking.slot_date,
                guardian_name=booking.parent_name,
                guardian_phone=booking.parent_phone,
                child_count=booking.child_count,
                source="online",
            )
        )
        db.commit()

    # The ticket lookup misses the row another writer just inserted.
    monkeypatch.setattr(TicketRepository, "get_by_booking_id", lambda self, booking_id: None)

    conflict = client.post("/payments/webhook", json=_completed(invoice_id), headers=HEADERS)

    assert conflict.status_code == 409
    assert conflict.json()["detail"]["code"] == "TICKET_CONFLICT"
    state = _state(session_factory, invoice_id)
    assert state["payment_status"] == "pending"
    assert state["booking_payment_status"] == "pending"

    monkeypatch.undo()
    retry = client.post("/payments/webhook", json=_completed(invoice_id), headers=HEADERS)

    assert retry.status_code == 200
    state = _state(session_factory, invoice_id)
    assert state["payment_status"] == "completed"
    assert state["booking_status"] == "confirmed"
    assert state["tickets"] == 1
    assert len(_payment_messages(sms)) == 1


def test_cash_invoice_collision_is_a_duplicate_invoice(client, booking_id, session_factory, monkeypatch):
    taken = _initiate(client, booking_id).json()["invoice_id"]
    monkeypatch.setattr(payment_service, "generate_invoice_id", lambda: taken)

    response = client.post("/payments/cash", json={"booking_id": booking_id, "amount": 500})

    assert response.status_code == 409
    assert response.json()["detail"]["code"] == "DUPLICATE_INVOICE"
    state = _state(session_factory, taken)
    assert state["payment_status"] == "pending"
    assert state["booking_payment_status"] == "pending"
    assert state["tickets"] == 0


def test_payment_for_cancelled_booking_sends_no_receipt(client, booking_id, session_factory, sms):
    invoice_id = _initiate(client, booking_id).json()["invoice_id"]
    client.post(f"/bookings/{booking_id}/cancel", json={"reason": "Plans changed"})

    response = client.post("/payments/webhook", json=_completed(invoice_id), headers=HEADERS)

    assert response.status_code == 200
    state = _state(session_factory, invoice_id)
    assert state["payment_status"] == "completed"
    assert state["booking_status"] == "cancelled"
    assert state["tickets"] == 0
    assert _payment_messages(sms) == []
