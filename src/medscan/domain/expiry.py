from datetime import date
from typing import Optional

from .models import ExpiryStatus
from .normalize import Instant, add_months, as_date

EXPIRING_SOON_MONTHS = 2


def expiring_soon_threshold(now: Optional[Instant] = None) -> date:
    return add_months(as_date(now), EXPIRING_SOON_MONTHS)


def classify_expiry(expiry_date: date, now: Optional[Instant] = None) -> ExpiryStatus:
    """Classify an expiry date against the evaluation instant (date only).

    Both flags are computed independently: a date in the past is expired and
    also within the expiring-soon window.
    """
    today = as_date(now)
    return ExpiryStatus(
        is_expired=expiry_date < today,
        is_expiring_soon=expiry_date <= expiring_soon_threshold(today),
    )
