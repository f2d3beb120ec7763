"""
Knowledge Base Schema — the optional reference material a persona may draw on.

A knowledge base is always paired with a use contract stating what it
supports, how the persona may and may not use it, how staleness is
treated and how items are cited. Items are numbered KB-1, KB-2, ...
"""

from __future__ import annotations

import enum

from pydantic import AnyUrl, BaseModel, Field


class KBPermittedUse(str, enum.Enum):
    REFERENCE_ONLY = "reference_only"
    FRAMING = "framing"
    CHALLENGE = "challenge"
    BOUNDARY_SETTING = "boundary_setting"


class KBItemType(str, enum.Enum):
    FILE = "file"
    LINK = "link"
    EXCERPT = "excerpt"
    NOTE = "note"


class KBItemSource(str, enum.Enum):
    USER_PROVIDED = "user_provided"
    FIRM_REFERENCE = "firm_reference"
    EXTERNAL_PUBLIC = "external_public"


class KBContentRepresentation(str, enum.Enum):
    FULL_TEXT = "full_text"
    EXCERPT = "excerpt"
    LINK_ONLY = "link_only"


class KBUseContract(BaseModel):
    """How the persona may use its knowledge base."""

    purpose: str = Field(min_length=1, description="What this knowledge base is meant to support")
    permitted_uses: list[KBPermittedUse] = Field(min_length=1)
    prohibited_uses: list[str] = Field(min_length=1)
    currency_rule: str = Field(min_length=1, description="How staleness is treated")
    citation_behaviour: str = Field(min_length=1, description="How items are cited in panel responses")
    coverage_limits: str = Field(min_length=1, description="What this knowledge base does not cover")


class KBItem(BaseModel):
    id: str = Field(pattern=r"^KB-\d+$")
    title: str = Field(min_length=1)
    type: KBItemType
    source: KBItemSource
    date_version: str = "Not provided"
    scope: str = Field(min_length=1, description="One line on what it covers")
    content_representation: KBContentRepresentation
    content: str | None = None
    link: AnyUrl | None = None
    used_for: list[str] = Field(min_length=1, max_length=3)
    constraints: list[str] | None = None


class KnowledgeBase(BaseModel):
    contract: KBUseContract
    items: list[KBItem] = Field(min_length=1)
