from typing import Literal, Optional
from uuid import UUID

from pydantic import AwareDatetime, Field

from .conflict_case import CamelModel


PolicyStatus = Literal["DRAFT", "ACTIVE", "ARCHIVED", "SUPERSEDED"]
PolicySectionType = Literal[
    "OVERVIEW",
    "DEFINITIONS",
    "GUIDELINES",
    "PROCEDURES",
    "VIOLATIONS",
    "CONSEQUENCES",
    "REPORTING",
    "APPEALS",
    "OTHER",
]


class PolicySection(CamelModel):
    id: UUID
    section_number: str = ""
    title: str = Field(..., min_length=1, max_length=255)
    content: str = ""
    type: PolicySectionType = "OTHER"
    keywords: list[str] = Field(default_factory=list)
    parent_section_id: Optional[UUID] = None
    order_index: int = 0

    @property
    def display_title(self) -> str:
        if self.section_number:
            return f"{self.section_number} {self.title}"
        return self.title


class WorkplacePolicy(CamelModel):
    id: UUID
    name: str = Field(..., min_length=1, max_length=500)
    version: str = "1.0"
    status: PolicyStatus = "DRAFT"
    description: str = ""
    organization_id: str = ""
    effective_date: Optional[AwareDatetime] = None
    expiry_date: Optional[AwareDatetime] = None
    sections: list[PolicySection] = Field(default_factory=list)
    created_by: str = ""
    updated_at: Optional[AwareDatetime] = None

    @property
    def is_active(self) -> bool:
        return self.status == "ACTIVE"
