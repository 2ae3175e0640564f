from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Generic, Optional, TypeVar, Union

T = TypeVar("T")

UNKNOWN_MEDICINE = "Unknown Medicine"
BATCH_NOT_AVAILABLE = "N/A"


class DateOrder(str, Enum):
    """Field order of a numeric date token."""

    DMY = "dmy"
    YMD = "ymd"


class UrgencyCategory(str, Enum):
    SAFE = "safe"
    EXPIRING_SOON = "expiring_soon"
    EXPIRED = "expired"


@dataclass(frozen=True)
class Found(Generic[T]):
    value: T
    source: str = ""

    @property
    def is_fallback(self) -> bool:
        return False


@dataclass(frozen=True)
class Fallback(Generic[T]):
    value: T
    reason: str = "not_found"

    @property
    def is_fallback(self) -> bool:
        return True


Extracted = Union[Found[T], Fallback[T]]


@dataclass(frozen=True)
class ExtractedFields:
    name_result: Extracted[str]
    expiry_result: Extracted[Optional[str]]
    batch_result: Extracted[str]
    expiry_order: DateOrder = DateOrder.DMY

    @property
    def name(self) -> str:
        return self.name_result.value

    @property
    def raw_expiry_token(self) -> Optional[str]:
        return self.expiry_result.value

    @property
    def batch_number(self) -> str:
        return self.batch_result.value


@dataclass(frozen=True)
class NormalizedDate:
    result: Extracted[date]

    @property
    def value(self) -> date:
        return self.result.value

    @property
    def is_fallback(self) -> bool:
        return self.result.is_fallback

    def iso(self) -> str:
        return self.value.isoformat()


@dataclass(frozen=True)
class ExpiryStatus:
    is_expired: bool
    is_expiring_soon: bool

    @property
    def urgency(self) -> UrgencyCategory:
        if self.is_expired:
            return UrgencyCategory.EXPIRED
        if self.is_expiring_soon:
            return UrgencyCategory.EXPIRING_SOON
        return UrgencyCategory.SAFE


@dataclass(frozen=True)
class MedicineRecord:
    id: Optional[int]
    owner_id: str
    name: str
    expiry_date: str  # YYYY-MM-DD
    batch_number: str
    image_path: str
    manufacturer: str = ""
    created_at: Optional[str] = None  # YYYY-MM-DD HH:MM:SS

    def expiry(self) -> date:
        return date.fromisoformat(self.expiry_date)
