from __future__ import annotations

import re
from abc import ABC
from datetime import date, datetime
from typing import TYPE_CHECKING, Optional

import pytz

from .config import get_settings

if TYPE_CHECKING:
    from ..infrastructure.marketplace_client import MarketplaceClient


def parse_timezone(timezone_str: str):
    """
    Parse a timezone string which can be either:
    - A standard IANA timezone name (e.g., 'Asia/Ho_Chi_Minh')
    - An offset-based string (e.g., 'UTC+07:00')

    Returns a pytz timezone object, UTC when the string is not understood.
    """
    try:
        return pytz.timezone(timezone_str)
    except pytz.exceptions.UnknownTimeZoneError:
        pass

    match = re.match(r"^UTC([+-])(\d{2}):(\d{2})$", timezone_str)
    if match:
        sign, hours, minutes = match.groups()
        total_offset = int(hours) * 60 + int(minutes)
        if sign == "-":
            total_offset = -total_offset
        return pytz.FixedOffset(total_offset)

    return pytz.UTC


def market_today(timezone_str: Optional[str] = None) -> date:
    """Calendar date "today" in the marketplace timezone"""
    tz = parse_timezone(timezone_str or get_settings().MARKET_TIMEZONE)
    return datetime.now(tz).date()


class IService(ABC):
    """Base service interface"""
    pass


class BaseService(IService):
    """Base service implementation with common dependencies"""

    def __init__(self, client: MarketplaceClient):
        self.client = client

    def today(self) -> date:
        return market_today()
