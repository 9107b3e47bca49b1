"""Results writing entities."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any


class SpecStatus(str, Enum):
    """Rendered status in the Specs sheet status column."""

    PASSED = "passed"
    FAILED = "failed"
    PENDING = "pending"
    EXCLUDED = "excluded"
    UNKNOWN = "unknown"

    @classmethod
    def from_payload(cls, value: Any) -> SpecStatus:
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.UNKNOWN


@dataclass(frozen=True)
class SpecRecord:
    """One finished spec as reported by the device."""

    suite: str
    description: str
    status: SpecStatus
    failed_expectations: tuple[str, ...] = ()

    @classmethod
    def from_payload(cls, payload: Any) -> SpecRecord:
        data = payload if isinstance(payload, Mapping) else {}
        description = str(data.get("description") or "")
        full_name = str(data.get("fullName") or description)
        if description and full_name.endswith(description):
            suite = full_name[: -len(description)].strip()
        else:
            suite = ""
        expectations = tuple(
            str(item.get("message", "")) if isinstance(item, dict) else str(item)
            for item in data.get("failedExpectations") or ()
        )
        return cls(
            suite=suite,
            description=description,
            status=SpecStatus.from_payload(data.get("status")),
            failed_expectations=expectations,
        )


@dataclass(frozen=True)
class RunMetadata:
    """Metadata rendered into the RunInfo sheet."""

    run_start: datetime
    platform: str
    action: str
    plugins: tuple[str, ...]
    spec_failed: int | None
