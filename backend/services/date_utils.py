# backend/services/date_utils.py
import logging
import re
from datetime import datetime, date, timedelta

import pytz

from .settings import app_setting

logger = logging.getLogger(__name__)

DEFAULT_TIMEZONE = 'America/Los_Angeles'


def business_timezone():
    """Timezone the business issues documents in (TIMEZONE setting)."""
    name = app_setting('TIMEZONE', DEFAULT_TIMEZONE)
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        logger.warning(f"Unknown TIMEZONE '{name}', using {DEFAULT_TIMEZONE}")
        return pytz.timezone(DEFAULT_TIMEZONE)


def business_today():
    """Today's date in the business timezone, not the server's."""
    return datetime.now(pytz.utc).astimezone(business_timezone()).date()


def days_from(start, days):
    return start + timedelta(days=int(days))


def format_date_for_response(date_obj):
    """
    Format a date object for consistent API responses.

    Args:
        date_obj (date or datetime): The date to format

    Returns:
        str: Formatted date string in ISO format
    """
    if not date_obj:
        return None

    if isinstance(date_obj, datetime):
        # Make datetime timezone-aware if it isn't already
        if date_obj.tzinfo is None:
            date_obj = pytz.utc.localize(date_obj)
        return date_obj.astimezone(business_timezone()).date().isoformat()
    elif isinstance(date_obj, date):
        return date_obj.isoformat()

    return str(date_obj)


def parse_date(date_str):
    """
    Parse a payment or document date, returning a date object without time.

    Args:
        date_str (str): ISO date or datetime string

    Returns:
        date: Parsed date, or None for empty input

    Raises:
        ValueError: if the string is not a recognizable date
    """
    if not date_str:
        return None

    try:
        # ISO format with timezone
        if 'T' in date_str and (date_str.endswith('Z') or '+' in date_str or '-' in date_str.split('T')[1]):
            dt = datetime.fromisoformat(date_str.replace('Z', '+00:00'))
            return dt.astimezone(business_timezone()).date()

        # ISO format without timezone (2023-05-21T10:00:00)
        if 'T' in date_str:
            date_str = date_str.split('T')[0]

        if re.match(r'^\d{4}-\d{2}-\d{2}$', date_str):
            year, month, day = map(int, date_str.split('-'))
            return date(year, month, day)

        return datetime.fromisoformat(date_str).date()

    except (TypeError, ValueError) as e:
        logger.error(f"Error parsing date '{date_str}': {str(e)}")
        raise ValueError(f"Invalid date format: {str(e)}")
