"""Load/save boundary for conflict cases.

A case persists as one JSON document keyed by its id. Saves use optimistic
concurrency: the updatedAt a case was loaded with must still be the stored
value, otherwise the save fails with StaleWriteError and the caller reloads.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any, Optional
from uuid import UUID

from ..models.conflict_case import CaseStatus, ConflictCase
from ...database import get_connection
from .analysis_payloads import parse_model
from .errors import CaseNotFoundError, CaseNumberExhaustedError, StaleWriteError
from .identity import IdentitySource

logger = logging.getLogger(__name__)

_MIN_ADVANCE = timedelta(microseconds=1)


def serialize_case(case: ConflictCase) -> str:
    return case.model_dump_json(by_alias=True)


def deserialize_case(raw_value: Any) -> ConflictCase:
    """Validate a stored or received case document (dict or JSON string)."""
    return parse_model(ConflictCase, raw_value, label="case document")


class CaseRepository(ABC):
    def __init__(self, identity: IdentitySource, *, max_case_number_attempts: int = 5):
        self.identity = identity
        self.max_case_number_attempts = max_case_number_attempts

    # Storage primitives

    @abstractmethod
    async def _fetch(self, case_id: UUID) -> Optional[tuple[Any, datetime]]:
        """Return (document, updated_at) or None."""

    @abstractmethod
    async def _insert(self, case: ConflictCase, document: str) -> bool:
        """Insert a new row. False when the case number is taken."""

    @abstractmethod
    async def _compare_and_swap(
        self,
        case: ConflictCase,
        document: str,
        expected_updated_at: datetime,
    ) -> bool:
        """Replace the row only if its updated_at equals the expected value."""

    @abstractmethod
    async def _case_exists(self, case_id: UUID) -> bool:
        ...

    @abstractmethod
    async def exists_case_number(self, case_number: str) -> bool:
        ...

    @abstractmethod
    async def list_cases(self, status: Optional[CaseStatus] = None) -> list[ConflictCase]:
        ...

    # Public API

    async def load(self, case_id: UUID) -> ConflictCase:
        row = await self._fetch(case_id)
        if row is None:
            raise CaseNotFoundError(f"Case {case_id} not found", case_id=case_id)
        document, updated_at = row
        case = deserialize_case(document)
        case.mark_persisted(updated_at)
        return case

    def _next_updated_at(self, case: ConflictCase) -> datetime:
        floor = case.updated_at
        if case.persisted_updated_at is not None:
            floor = max(floor, case.persisted_updated_at + _MIN_ADVANCE)
        return max(self.identity.now(), floor)

    async def save(self, case: ConflictCase) -> ConflictCase:
        """Persist ``case``; a case never loaded or saved before is inserted."""
        updated_at = self._next_updated_at(case)
        if case.persisted_updated_at is None:
            await self._save_new(case, updated_at)
        else:
            await self._save_existing(case, updated_at)
        return case

    async def _save_new(self, case: ConflictCase, updated_at: datetime) -> None:
        if await self._case_exists(case.id):
            raise StaleWriteError(
                f"Case {case.case_number} already exists; load it before saving", case_id=case.id
            )

        case_number = case.case_number
        for attempt in range(1, self.max_case_number_attempts + 1):
            snapshot = case.model_copy(update={"case_number": case_number, "updated_at": updated_at})
            if await self._insert(snapshot, serialize_case(snapshot)):
                if case_number != case.case_number:
                    logger.info(
                        "Case number %s was taken; case %s saved as %s",
                        case.case_number,
                        case.id,
                        case_number,
                    )
                case.case_number = case_number
                case.updated_at = updated_at
                case.mark_persisted(updated_at)
                return
            logger.warning(
                "Case number collision on %s (attempt %d/%d)",
                case_number,
                attempt,
                self.max_case_number_attempts,
            )
            case_number = self.identity.case_number(case.created_at.date())

        raise CaseNumberExhaustedError(
            f"No free case number after {self.max_case_number_attempts} attempts", case_id=case.id
        )

    async def _save_existing(self, case: ConflictCase, updated_at: datetime) -> None:
        expected = case.persisted_updated_at
        snapshot = case.model_copy(update={"updated_at": updated_at})
        if await self._compare_and_swap(snapshot, serialize_case(snapshot), expected):
            case.updated_at = updated_at
            case.mark_persisted(updated_at)
            return

        if not await self._case_exists(case.id):
            raise CaseNotFoundError(f"Case {case.id} not found", case_id=case.id)
        logger.warning("Stale write rejected for case %s", case.case_number)
        raise StaleWriteError(
            f"Case {case.case_number} changed since it was loaded; reload and retry",
            case_id=case.id,
        )


class InMemoryCaseRepository(CaseRepository):
    """Process-local repository for tests and embedded use."""

    def __init__(self, identity: IdentitySource, *, max_case_number_attempts: int = 5):
        super().__init__(identity, max_case_number_attempts=max_case_number_attempts)
        self._rows: dict[UUID, tuple[str, datetime]] = {}
        self._numbers: dict[str, UUID] = {}

    async def _fetch(self, case_id: UUID) -> Optional[tuple[Any, datetime]]:
        return self._rows.get(case_id)

    async def _insert(self, case: ConflictCase, document: str) -> bool:
        if case.case_number in self._numbers:
            return False
        self._rows[case.id] = (document, case.updated_at)
        self._numbers[case.case_number] = case.id
        return True

    async def _compare_and_swap(
        self,
        case: ConflictCase,
        document: str,
        expected_updated_at: datetime,
    ) -> bool:
        row = self._rows.get(case.id)
        if row is None or row[1] != expected_updated_at:
            return False
        self._rows[case.id] = (document, case.updated_at)
        return True

    async def _case_exists(self, case_id: UUID) -> bool:
        return case_id in self._rows

    async def exists_case_number(self, case_number: str) -> bool:
        return case_number in self._numbers

    async def list_cases(self, status: Optional[CaseStatus] = None) -> list[ConflictCase]:
        cases = []
        for case_id in self._rows:
            case = await self.load(case_id)
            if status is None or case.status == status:
                cases.append(case)
        return sorted(cases, key=lambda case: case.updated_at, reverse=True)


class PostgresCaseRepository(CaseRepository):
    """asyncpg-backed repository; one JSONB row per case in ``conflict_cases``."""

    async def _fetch(self, case_id: UUID) -> Optional[tuple[Any, datetime]]:
        async with get_connection() as conn:
            row = await conn.fetchrow(
                "SELECT document, updated_at FROM conflict_cases WHERE id = $1",
                case_id,
            )
        if row is None:
            return None
        return row["document"], row["updated_at"]

    async def _insert(self, case: ConflictCase, document: str) -> bool:
        async with get_connection() as conn:
            inserted = await conn.fetchval(
                """
                INSERT INTO conflict_cases (id, case_number, status, document, created_at, updated_at)
                VALUES ($1, $2, $3, $4::jsonb, $5, $6)
                ON CONFLICT (case_number) DO NOTHING
                RETURNING id
                """,
                case.id,
                case.case_number,
                case.status,
                document,
                case.created_at,
                case.updated_at,
            )
        return inserted is not None

    async def _compare_and_swap(
        self,
        case: ConflictCase,
        document: str,
        expected_updated_at: datetime,
    ) -> bool:
        async with get_connection() as conn:
            result = await conn.execute(
                """
                UPDATE conflict_cases
                SET status = $2, document = $3::jsonb, updated_at = $4
                WHERE id = $1 AND updated_at = $5
                """,
                case.id,
                case.status,
                document,
                case.updated_at,
                expected_updated_at,
            )
        return result.split()[-1] != "0"

    async def _case_exists(self, case_id: UUID) -> bool:
        async with get_connection() as conn:
            exists = await conn.fetchval("SELECT 1 FROM conflict_cases WHERE id = $1", case_id)
        return exists is not None

    async def exists_case_number(self, case_number: str) -> bool:
        async with get_connection() as conn:
            exists = await conn.fetchval(
                "SELECT 1 FROM conflict_cases WHERE case_number = $1", case_number
            )
        return exists is not None

    async def list_cases(self, status: Optional[CaseStatus] = None) -> list[ConflictCase]:
        async with get_connection() as conn:
            if status is None:
                rows = await conn.fetch(
                    "SELECT document, updated_at FROM conflict_cases ORDER BY updated_at DESC"
                )
            else:
                rows = await conn.fetch(
                    """
                    SELECT document, updated_at FROM conflict_cases
                    WHERE status = $1 ORDER BY updated_at DESC
                    """,
                    status,
                )
        cases = []
        for row in rows:
            case = deserialize_case(row["document"])
            case.mark_persisted(row["updated_at"])
            cases.append(case)
        return cases
