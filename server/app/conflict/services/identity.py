"""Identifier, case number and clock sources.

Operations never call uuid4() or the wall clock directly; they take an
IdentitySource so replays and tests can pin every generated value.
"""

from __future__ import annotations

import random
import secrets
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Optional, Protocol


CASE_NUMBER_SUFFIX_MIN = 1000
CASE_NUMBER_SUFFIX_MAX = 9999


def format_case_number(prefix: str, on: date, suffix: int) -> str:
    if not CASE_NUMBER_SUFFIX_MIN <= suffix <= CASE_NUMBER_SUFFIX_MAX:
        raise ValueError(f"Case number suffix {suffix} is outside 1000-9999")
    return f"{prefix}-{on:%Y%m%d}-{suffix:04d}"


class IdentitySource(Protocol):
    def new_id(self) -> uuid.UUID: ...

    def case_number(self, on: date) -> str: ...

    def now(self) -> datetime: ...


class SystemIdentitySource:
    """Random UUIDv4s, random case number suffixes, and the UTC wall clock."""

    def __init__(self, case_number_prefix: str = "CR"):
        self.case_number_prefix = case_number_prefix

    def new_id(self) -> uuid.UUID:
        return uuid.uuid4()

    def case_number(self, on: date) -> str:
        span = CASE_NUMBER_SUFFIX_MAX - CASE_NUMBER_SUFFIX_MIN + 1
        suffix = CASE_NUMBER_SUFFIX_MIN + secrets.randbelow(span)
        return format_case_number(self.case_number_prefix, on, suffix)

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class SeededIdentitySource:
    """Deterministic source: seeded UUIDv4s/suffixes and a stepping clock.

    Each call to now() advances the clock by ``step``, so timestamps issued
    by one source are strictly increasing.
    """

    def __init__(
        self,
        seed: int = 0,
        *,
        start: Optional[datetime] = None,
        step: timedelta = timedelta(seconds=1),
        case_number_prefix: str = "CR",
    ):
        if start is None:
            start = datetime(2025, 6, 1, 9, 0, tzinfo=timezone.utc)
        if start.tzinfo is None:
            raise ValueError("start must be timezone-aware")
        if step <= timedelta(0):
            raise ValueError("step must be positive")
        self._rng = random.Random(seed)
        self._next = start
        self._step = step
        self.case_number_prefix = case_number_prefix

    def new_id(self) -> uuid.UUID:
        return uuid.UUID(int=self._rng.getrandbits(128), version=4)

    def case_number(self, on: date) -> str:
        suffix = self._rng.randint(CASE_NUMBER_SUFFIX_MIN, CASE_NUMBER_SUFFIX_MAX)
        return format_case_number(self.case_number_prefix, on, suffix)

    def now(self) -> datetime:
        current = self._next
        self._next = current + self._step
        return current
