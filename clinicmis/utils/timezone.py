# FILE: clinicmis/utils/timezone.py
from __future__ import annotations

from datetime import datetime, date, timezone
from zoneinfo import ZoneInfo

from clinicmis.core.config import settings


def clinic_tz() -> ZoneInfo:
    return ZoneInfo(settings.TIMEZONE or "UTC")


def now_local() -> datetime:
    """
    Returns a *naive* datetime in the clinic timezone.
    DateTime columns are naive, so tzinfo is dropped after conversion.
    """
    return datetime.now(timezone.utc).astimezone(clinic_tz()).replace(tzinfo=None)


def today_local() -> date:
    return now_local().date()


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)
