"""Async client for the tour marketplace REST backend."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..core.config import get_settings
from ..core.exceptions import (
    ExternalServiceError,
    NetworkError,
    NotFoundError,
    StateConflictError,
)
from ..models import (
    Booking,
    BookingRequest,
    CancellationPreview,
    PaymentSession,
    TourPricing,
    Transaction,
    VoucherPreview,
)


logger = logging.getLogger(__name__)

SERVICE_NAME = "marketplace"


class MarketplaceClient:
    """Thin wrapper around the backend endpoints the checkout flow needs.

    Every call maps transport failures and upstream errors onto the
    application's error hierarchy so services never see raw httpx errors.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        token: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if base_url is None or timeout is None:
            settings = get_settings()
            base_url = base_url or settings.MARKETPLACE_API_URL
            token = token if token is not None else settings.MARKETPLACE_API_TOKEN
            timeout = timeout or settings.MARKETPLACE_TIMEOUT_SECONDS

        headers = {"Content-Type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"

        self._http = httpx.AsyncClient(
            base_url=base_url,
            headers=headers,
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> MarketplaceClient:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        *,
        user_email: Optional[str] = None,
        entity: str = "Resource",
        entity_id: Any = None,
        **kwargs: Any,
    ) -> Any:
        headers = kwargs.pop("headers", {})
        if user_email:
            headers["User-Email"] = user_email

        try:
            response = await self._http.request(method, path, headers=headers, **kwargs)
        except httpx.TransportError as exc:
            logger.warning("%s %s failed: %s", method, path, exc)
            raise NetworkError(SERVICE_NAME, str(exc) or exc.__class__.__name__) from exc

        if response.status_code == 404:
            raise NotFoundError(entity, entity_id)
        if response.status_code >= 500:
            logger.warning("%s %s returned %s", method, path, response.status_code)
            raise NetworkError(SERVICE_NAME, f"upstream returned {response.status_code}")
        if response.status_code == 409:
            raise StateConflictError(_error_message(response))
        if response.status_code >= 400:
            raise ExternalServiceError(
                SERVICE_NAME, _error_message(response), upstream_status=response.status_code
            )

        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    # Tours

    async def get_tour(self, tour_id: int) -> TourPricing:
        data = await self._request("GET", f"/api/tour/{tour_id}", entity="Tour", entity_id=tour_id)
        return TourPricing.model_validate(data)

    # Bookings

    async def create_booking(self, request: BookingRequest) -> Booking:
        data = await self._request(
            "POST",
            "/api/booking",
            json=request.model_dump(mode="json", by_alias=True),
            user_email=request.user_email,
        )
        return Booking.model_validate(data)

    async def get_booking(self, booking_id: int) -> Booking:
        data = await self._request(
            "GET", f"/api/booking/id/{booking_id}", entity="Booking", entity_id=booking_id
        )
        return Booking.model_validate(data)

    async def get_bookings_by_email(self, email: str) -> List[Booking]:
        data = await self._request(
            "GET", f"/api/booking/email/{email}", user_email=email, entity="Bookings", entity_id=email
        )
        if not isinstance(data, list):
            return []
        return [Booking.model_validate(item) for item in data]

    async def update_booking(self, booking_id: int, request: BookingRequest) -> Booking:
        data = await self._request(
            "PUT",
            f"/api/booking/id/{booking_id}",
            json=request.model_dump(mode="json", by_alias=True),
            user_email=request.user_email,
            entity="Booking",
            entity_id=booking_id,
        )
        if data is None:
            return await self.get_booking(booking_id)
        return Booking.model_validate(data)

    async def change_booking_status(
        self, booking_id: int, status: str, message: Optional[str] = None
    ) -> None:
        payload: Dict[str, Any] = {"status": status}
        if message:
            payload["message"] = message
        await self._request(
            "PUT",
            f"/api/booking/id/{booking_id}/status",
            json=payload,
            entity="Booking",
            entity_id=booking_id,
        )

    async def confirm_booking_completion(self, booking_id: int) -> None:
        await self._request(
            "PUT",
            f"/api/booking/id/{booking_id}/confirm-completion",
            entity="Booking",
            entity_id=booking_id,
        )

    async def create_complaint(self, booking_id: int, message: str) -> None:
        await self._request(
            "POST",
            f"/api/booking/id/{booking_id}/complaint",
            json={"message": message},
            entity="Booking",
            entity_id=booking_id,
        )

    async def send_booking_email(self, booking_id: int) -> None:
        await self._request(
            "POST",
            f"/api/booking/id/{booking_id}/send-email",
            entity="Booking",
            entity_id=booking_id,
        )

    # Vouchers

    async def preview_all_vouchers(self, booking_id: int) -> List[VoucherPreview]:
        data = await self._request(
            "GET", f"/api/vouchers/preview-all/{booking_id}", entity="Booking", entity_id=booking_id
        )
        if not isinstance(data, list):
            return []
        return [VoucherPreview.model_validate(item) for item in data]

    async def preview_voucher_apply(self, booking_id: int, voucher_code: str) -> VoucherPreview:
        data = await self._request(
            "POST",
            "/api/vouchers/apply",
            json={"bookingId": booking_id, "voucherCode": voucher_code},
            entity="Booking",
            entity_id=booking_id,
        )
        return VoucherPreview.model_validate(data)

    # Payments

    async def create_booking_payment(
        self,
        booking_id: int,
        user_email: str,
        deposit: bool,
        voucher_code: Optional[str] = None,
    ) -> PaymentSession:
        payload: Dict[str, Any] = {
            "bookingId": booking_id,
            "userEmail": user_email,
            "deposit": deposit,
        }
        if voucher_code:
            payload["voucherCode"] = voucher_code
        data = await self._request(
            "POST",
            "/api/booking/payment",
            json=payload,
            user_email=user_email,
            entity="Booking",
            entity_id=booking_id,
        )
        return PaymentSession.model_validate(data or {})

    async def get_transaction(self, order_id: str) -> Transaction:
        data = await self._request(
            "GET", f"/api/transactions/order/{order_id}", entity="Transaction", entity_id=order_id
        )
        return Transaction.model_validate(data)

    async def change_transaction_status(self, order_id: str, status: str) -> None:
        await self._request(
            "PUT",
            "/api/transactions/change-status",
            json={"orderId": order_id, "status": status},
            entity="Transaction",
            entity_id=order_id,
        )

    # Cancellation

    async def preview_cancel_booking(self, booking_id: int) -> CancellationPreview:
        data = await self._request(
            "GET",
            f"/api/booking/id/{booking_id}/cancel-preview",
            entity="Booking",
            entity_id=booking_id,
        )
        return CancellationPreview.model_validate(data or {})

    async def cancel_booking(self, booking_id: int) -> CancellationPreview:
        data = await self._request(
            "PUT",
            f"/api/booking/id/{booking_id}/cancel",
            entity="Booking",
            entity_id=booking_id,
        )
        return CancellationPreview.model_validate(data or {})


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or body)
    return str(body)
