"""Date formatting utilities"""

from datetime import datetime, timezone
from email.utils import format_datetime


def utc_now() -> datetime:
    """Timezone-aware current time in UTC"""
    return datetime.now(timezone.utc)


def format_http_date(moment: datetime) -> str:
    """RFC 1123 date as used in HTTP headers, e.g. 'Tue, 14 Nov 2023 22:13:20 GMT'"""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return format_datetime(moment.astimezone(timezone.utc), usegmt=True)


def format_signed_date_time(moment: datetime) -> str:
    """ISO-8601 UTC timestamp without fractional seconds, e.g. '2023-11-14T22:13:20Z'"""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def format_display_date(moment: datetime) -> str:
    """Human readable timestamp for notification emails"""
    return moment.strftime("%d/%m/%Y %H:%M")
