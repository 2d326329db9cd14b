from __future__ import annotations

import re
from enum import Enum
from typing import Optional

from .errors import UnknownStatusError


# "inactive", "deactivated" and "not activated" must not match.
_LICENSE_ACTIVE = re.compile(r"\b(?:active and valid|activated)\b")
_LICENSE_NEGATED = re.compile(r"\b(?:not|no|never)\b")


class Scope(str, Enum):
    SHOW = "Show"
    TRIAL = "Trial"
    CLASS = "Class"

    @classmethod
    def parse(cls, value: str) -> "Scope":
        text = (value or "").strip().lower()
        for member in cls:
            if member.value.lower() == text:
                return member
        raise ValueError(f"Unknown sync scope '{value}'")


class Decision(str, Enum):
    """Operator answer when scored entries would be affected."""

    CANCEL = "cancel"
    KEEP = "keep"
    OVERWRITE = "overwrite"


class Direction(str, Enum):
    UPLOAD = "upload"
    DOWNLOAD = "download"


class LicenseStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    MISSING = "missing"

    @classmethod
    def from_text(cls, license_key: Optional[str], status_text: Optional[str]) -> "LicenseStatus":
        if not (license_key or "").strip() or not (status_text or "").strip():
            return cls.MISSING
        lowered = status_text.lower()
        if _LICENSE_ACTIVE.search(lowered) and not _LICENSE_NEGATED.search(lowered):
            return cls.ACTIVE
        return cls.INACTIVE


class ResultStatus(str, Enum):
    PENDING = "pending"
    QUALIFIED = "qualified"
    NQ = "nq"
    EXCUSED = "excused"
    ABSENT = "absent"
    WITHDRAWN = "withdrawn"

    @classmethod
    def from_wire(cls, value: Optional[str]) -> "ResultStatus":
        if value is None:
            return cls.PENDING
        text = str(value).strip().lower()
        if not text:
            return cls.PENDING
        for member in cls:
            if member.value == text:
                return member
        raise UnknownStatusError(f"Unrecognized result status '{value}'", payload=value)

    @property
    def is_scored(self) -> bool:
        return self is not ResultStatus.PENDING


# Order decides which flag wins when a local row carries more than one.
RESULT_PRIORITY = (
    ResultStatus.QUALIFIED,
    ResultStatus.NQ,
    ResultStatus.EXCUSED,
    ResultStatus.ABSENT,
    ResultStatus.WITHDRAWN,
)
