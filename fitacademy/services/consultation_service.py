# services/consultation_service.py
import logging
from typing import Dict, Any
from urllib.parse import urlencode

from fitacademy.clients.backend import BackendClient, BackendError
from fitacademy.messages import AR, describe_error
from fitacademy.schemas.auth_schemas import Viewer

logger = logging.getLogger(__name__)

PHONE_REQUIRED_MARKER = "Phone number is required"


class BookingRejected(Exception):
    """Upstream refused the booking; `message` is ready to show to the user."""

    def __init__(self, message: str, status_code: int = 400, next_step: str = None):
        self.message = message
        self.status_code = status_code
        self.next_step = next_step
        super().__init__(message)


def clean_user_details(details: Dict[str, Any]) -> Dict[str, Any]:
    # empty answers are left out rather than sent as ""
    return {k: v for k, v in details.items() if v not in (None, "", [], {})}


def booking_payload(data: Dict[str, Any]) -> Dict[str, Any]:
    payload = {k: v for k, v in data.items() if k != "userDetails" and v not in (None, "")}
    payload["userDetails"] = clean_user_details(data.get("userDetails") or {})
    return payload


def rejection_message(error: BackendError) -> BookingRejected:
    payload = error.payload
    if PHONE_REQUIRED_MARKER in str(payload.get("error") or ""):
        return BookingRejected(AR["booking_phone_required"], error.status_code, next_step="/profile")
    errors = payload.get("errors")
    if errors:
        items = errors.values() if isinstance(errors, dict) else errors
        details = "، ".join(
            str(e.get("message") if isinstance(e, dict) else e) for e in items
        )
        return BookingRejected(AR["booking_invalid_data"].format(details=details), error.status_code)
    return BookingRejected(describe_error(error, AR["booking_error"]), error.status_code)


def next_step_for(booking: Dict[str, Any], consultation_id: str, payment_required: bool) -> str:
    if payment_required:
        return "/checkout?" + urlencode({"bookingId": booking.get("_id") or booking.get("id"), "consultationId": consultation_id})
    return "/consultations/my-bookings"


async def create_booking(backend: BackendClient, viewer: Viewer, data: Dict[str, Any]) -> Dict[str, Any]:
    payload = booking_payload(data)
    try:
        resp = await backend.create_booking(viewer.token, payload)
    except BackendError as e:
        logger.warning(f"Booking rejected for user {viewer.id}: {e.status_code} {e.payload.get('error')}")
        raise rejection_message(e) from e

    booking = resp.get("booking") or {}
    payment_required = bool(resp.get("paymentRequired"))
    logger.info(f"Booking {booking.get('_id')} created for user {viewer.id}, payment required: {payment_required}")
    return {
        "booking": booking,
        "payment_required": payment_required,
        "next_step": next_step_for(booking, payload["consultationId"], payment_required),
        "message": AR["booking_created"],
    }
