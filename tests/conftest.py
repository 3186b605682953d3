import os

os.environ.setdefault("MARKETPLACE_API_URL", "http://marketplace.test")
os.environ.setdefault("RATE_LIMIT_DEFAULT", "1000/minute")
os.environ.setdefault("MARKET_TIMEZONE", "Asia/Ho_Chi_Minh")

import json
import re
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Dict, Iterable, Optional

import httpx
import pytest

from tourcheckout.core.base import market_today
from tourcheckout.core.exceptions import StorageError
from tourcheckout.infrastructure.kv_store import IKeyValueStore
from tourcheckout.infrastructure.marketplace_client import MarketplaceClient
from tourcheckout.infrastructure.repositories import PendingBookingRepository


BASE_URL = "http://marketplace.test"


class InMemoryStore(IKeyValueStore):
    """Key/value double; set `broken` to simulate an unavailable store"""

    def __init__(self):
        self.data: Dict[str, str] = {}
        self.ttls: Dict[str, Optional[int]] = {}
        self.broken = False

    def _check(self):
        if self.broken:
            raise StorageError("store unavailable")

    async def get(self, key: str) -> Optional[str]:
        self._check()
        return self.data.get(key)

    async def set(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        self._check()
        self.data[key] = value
        self.ttls[key] = ttl

    async def scan_prefix(self, prefix: str) -> Dict[str, str]:
        self._check()
        return {k: v for k, v in self.data.items() if k.startswith(prefix)}

    async def delete_many(self, keys: Iterable[str]) -> int:
        self._check()
        removed = 0
        for key in list(keys):
            if self.data.pop(key, None) is not None:
                removed += 1
        return removed

    async def ping(self) -> bool:
        return not self.broken


def _money(value) -> Decimal:
    return Decimal(str(value or 0))


class FakeMarketplace:
    """In-memory marketplace backend served through httpx.MockTransport"""

    def __init__(self):
        self.tours: Dict[int, dict] = {}
        self.bookings: Dict[int, dict] = {}
        self.voucher_previews: Dict[tuple, dict] = {}
        self.all_previews: Dict[int, list] = {}
        self.cancel_previews: Dict[int, dict] = {}
        self.cancel_results: Dict[int, dict] = {}
        self.transactions: Dict[str, dict] = {}
        self.payment_response = {"success": True, "payUrl": "https://pay.test/session/1", "orderId": "ORD-1"}
        self.failures: Dict[tuple, object] = {}
        self.requests: list = []
        self.next_booking_id = 100
        self.routes = [
            ("GET", r"/api/tour/(\d+)", self.get_tour),
            ("POST", r"/api/booking", self.create_booking),
            ("POST", r"/api/booking/payment", self.create_payment),
            ("GET", r"/api/booking/id/(\d+)", self.get_booking),
            ("PUT", r"/api/booking/id/(\d+)", self.update_booking),
            ("PUT", r"/api/booking/id/(\d+)/status", self.change_status),
            ("PUT", r"/api/booking/id/(\d+)/confirm-completion", self.confirm_completion),
            ("POST", r"/api/booking/id/(\d+)/complaint", self.complaint),
            ("POST", r"/api/booking/id/(\d+)/send-email", self.send_email),
            ("GET", r"/api/booking/id/(\d+)/cancel-preview", self.cancel_preview),
            ("PUT", r"/api/booking/id/(\d+)/cancel", self.cancel),
            ("GET", r"/api/booking/email/(.+)", self.bookings_by_email),
            ("GET", r"/api/vouchers/preview-all/(\d+)", self.preview_all),
            ("POST", r"/api/vouchers/apply", self.apply_voucher),
            ("GET", r"/api/transactions/order/(.+)", self.get_transaction),
            ("PUT", r"/api/transactions/change-status", self.change_transaction),
        ]

    # helpers

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)

    def client(self) -> MarketplaceClient:
        return MarketplaceClient(base_url=BASE_URL, token="test-token", timeout=5, transport=self.transport())

    def calls(self, method: str, pattern: str) -> int:
        return sum(1 for m, path, _ in self.requests if m == method and re.fullmatch(pattern, path))

    def add_tour(self, tour_id=1, **overrides) -> dict:
        tour = {
            "id": tour_id,
            "tourName": "Ha Long Bay Cruise",
            "adultPrice": 1000000,
            "childrenPrice": 500000,
            "babyPrice": 0,
            "depositPercentage": 30,
            "tourDeadline": 2,
            "minAdvancedDays": 3,
            "tourExpirationDate": "2099-12-31T00:00:00",
        }
        tour.update(overrides)
        self.tours[tour_id] = tour
        return tour

    def add_booking(self, booking_id=None, **overrides) -> dict:
        if booking_id is None:
            booking_id = self.next_booking_id
            self.next_booking_id += 1
        booking = {
            "bookingId": booking_id,
            "tourId": 1,
            "tourName": "Ha Long Bay Cruise",
            "contactName": "Nguyen Van A",
            "contactPhone": "0901234567",
            "contactEmail": "guest@example.com",
            "contactAddress": "1 Le Loi, District 1",
            "pickupPoint": "Hotel lobby",
            "departureDate": "2099-06-01",
            "adultsCount": 2,
            "childrenCount": 0,
            "babiesCount": 0,
            "bookingStatus": "PENDING_DEPOSIT_PAYMENT",
            "totalAmount": 2000000,
            "depositAmount": 600000,
            "payedAmount": 0,
            "userConfirmedCompletion": False,
            "createdAt": "2025-01-10T08:00:00",
            "userEmail": "guest@example.com",
        }
        booking.update(overrides)
        self.bookings[booking_id] = booking
        return booking

    def status_of(self, booking_id: int) -> str:
        return self.bookings[booking_id]["bookingStatus"]

    # transport

    def handler(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        body = json.loads(request.content) if request.content else None
        self.requests.append((request.method, path, body))

        failure = self.failures.get((request.method, path))
        if failure == "network":
            raise httpx.ConnectError("connection refused", request=request)
        if isinstance(failure, int):
            return httpx.Response(failure, json={"message": "backend said no"})

        for method, pattern, view in self.routes:
            if method != request.method:
                continue
            match = re.fullmatch(pattern, path)
            if match:
                return view(body, *match.groups())
        return httpx.Response(404, json={"message": f"no route {path}"})

    def _booking_or_404(self, booking_id):
        booking = self.bookings.get(int(booking_id))
        if booking is None:
            return None, httpx.Response(404, json={"message": "booking not found"})
        return booking, None

    def get_tour(self, body, tour_id):
        tour = self.tours.get(int(tour_id))
        if tour is None:
            return httpx.Response(404, json={"message": "tour not found"})
        return httpx.Response(200, json=tour)

    def create_booking(self, body, *_):
        tour = self.tours[body["tourId"]]
        total = (
            body["adultsCount"] * _money(tour["adultPrice"])
            + body["childrenCount"] * _money(tour["childrenPrice"])
            + body["babiesCount"] * _money(tour["babyPrice"])
        )
        pct = _money(tour["depositPercentage"])
        split = Decimal(0) < pct < Decimal(100)
        booking = self.add_booking(
            tourId=body["tourId"],
            contactName=body["contactName"],
            contactPhone=body["contactPhone"],
            contactEmail=body["contactEmail"],
            contactAddress=body["contactAddress"],
            pickupPoint=body["pickupPoint"],
            departureDate=body["departureDate"],
            adultsCount=body["adultsCount"],
            childrenCount=body["childrenCount"],
            babiesCount=body["babiesCount"],
            guests=body["bookingGuestRequests"],
            bookingStatus="PENDING_DEPOSIT_PAYMENT" if split else "PENDING_PAYMENT",
            totalAmount=int(total),
            depositAmount=int((total * pct / 100).quantize(Decimal(1))) if split else int(total),
            createdAt=datetime.now().isoformat(),
            userEmail=body["userEmail"],
        )
        return httpx.Response(200, json=booking)

    def get_booking(self, body, booking_id):
        booking, error = self._booking_or_404(booking_id)
        return error or httpx.Response(200, json=booking)

    def update_booking(self, body, booking_id):
        booking, error = self._booking_or_404(booking_id)
        if error:
            return error
        for key in ("contactName", "contactPhone", "contactEmail", "contactAddress", "pickupPoint", "note", "departureDate"):
            booking[key] = body.get(key, booking.get(key))
        booking["guests"] = body.get("bookingGuestRequests", [])
        return httpx.Response(200, json=booking)

    def change_status(self, body, booking_id):
        booking, error = self._booking_or_404(booking_id)
        if error:
            return error
        booking["bookingStatus"] = body["status"]
        return httpx.Response(200)

    def confirm_completion(self, body, booking_id):
        booking, error = self._booking_or_404(booking_id)
        if error:
            return error
        booking["userConfirmedCompletion"] = True
        booking["bookingStatus"] = "BOOKING_SUCCESS"
        return httpx.Response(200)

    def complaint(self, body, booking_id):
        booking, error = self._booking_or_404(booking_id)
        if error:
            return error
        booking["bookingStatus"] = "BOOKING_UNDER_COMPLAINT"
        booking["complaint"] = body["message"]
        return httpx.Response(200)

    def send_email(self, body, booking_id):
        return httpx.Response(200)

    def cancel_preview(self, body, booking_id):
        preview = self.cancel_previews.get(int(booking_id))
        if preview is None:
            return httpx.Response(404, json={"message": "no preview"})
        return httpx.Response(200, json=preview)

    def cancel(self, body, booking_id):
        booking, error = self._booking_or_404(booking_id)
        if error:
            return error
        booking["bookingStatus"] = "BOOKING_CANCELLED"
        result = self.cancel_results.get(int(booking_id)) or self.cancel_previews.get(int(booking_id), {})
        return httpx.Response(200, json=result)

    def bookings_by_email(self, body, email):
        found = [b for b in self.bookings.values() if b.get("userEmail") == email]
        return httpx.Response(200, json=found)

    def preview_all(self, body, booking_id):
        return httpx.Response(200, json=self.all_previews.get(int(booking_id), []))

    def apply_voucher(self, body, *_):
        preview = self.voucher_previews.get((body["bookingId"], body["voucherCode"]))
        if preview is None:
            return httpx.Response(400, json={"message": "voucher not found"})
        return httpx.Response(200, json=preview)

    def create_payment(self, body, *_):
        return httpx.Response(200, json=self.payment_response)

    def get_transaction(self, body, order_id):
        transaction = self.transactions.get(order_id)
        if transaction is None:
            return httpx.Response(404, json={"message": "no transaction"})
        return httpx.Response(200, json=transaction)

    def change_transaction(self, body, *_):
        self.transactions.setdefault(body["orderId"], {"orderId": body["orderId"]})["status"] = body["status"]
        return httpx.Response(200)


def years_ago(years: int, today: Optional[date] = None) -> date:
    today = today or market_today()
    return date(today.year - years, 1, 1)


def days_ahead(days: int) -> date:
    return market_today() + timedelta(days=days)


@pytest.fixture
def marketplace():
    fake = FakeMarketplace()
    fake.add_tour()
    return fake


@pytest.fixture
async def client(marketplace):
    api = marketplace.client()
    yield api
    await api.aclose()


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def pending(store):
    return PendingBookingRepository(store, ttl=60)
