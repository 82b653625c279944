from typing import Iterator

from fastapi import Depends
from sqlalchemy.orm import Session

from src.application.booking_service import BookingService
from src.application.notification_service import NotificationService
from src.application.payment_service import PaymentService
from src.application.slot_service import SlotService
from src.application.ticket_service import TicketService
from src.config.settings import Settings, get_settings
from src.infrastructure.db.session import SessionLocal
from src.infrastructure.gateways.sms_client import SmsClient
from src.infrastructure.gateways.uddoktapay_client import UddoktaPayClient


def get_db() -> Iterator[Session]:
    # Services own their commits; closing discards anything left uncommitted.
    with SessionLocal() as db:
        yield db


def get_sms_client(settings: Settings = Depends(get_settings)) -> SmsClient:
    return SmsClient(settings)


def get_payment_gateway(settings: Settings = Depends(get_settings)) -> UddoktaPayClient:
    return UddoktaPayClient(settings)


def get_notifier(
    settings: Settings = Depends(get_settings),
    sms_client: SmsClient = Depends(get_sms_client),
) -> NotificationService:
    return NotificationService(sms_client, settings)


def get_slot_service(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> SlotService:
    return SlotService(db, settings)


def get_booking_service(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    notifier: NotificationService = Depends(get_notifier),
) -> BookingService:
    return BookingService(db, settings, notifier)


def get_payment_service(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    gateway: UddoktaPayClient = Depends(get_payment_gateway),
    notifier: NotificationService = Depends(get_notifier),
) -> PaymentService:
    return PaymentService(db, settings, gateway, notifier)


def get_ticket_service(
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
) -> TicketService:
    return TicketService(db, settings)
