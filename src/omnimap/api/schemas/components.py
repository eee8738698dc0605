"""Schemas for component endpoints."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from omnimap.core.models import ComponentSummary


class ComponentSummarySchema(BaseModel):
    """One search row. Serialized with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    key: str = Field(description="Component key (procedureKey, or name for data mappers)")
    name: str
    kind: str = Field(description="data-mapper | integration-procedure | omniscript")
    type: str | None = None
    sub_type: str | None = None
    version: str | None = None
    step_count: int = 0
    reference_count: int = Field(default=0, description="Distinct procedures referenced")
    referenced_by_count: int = Field(default=0, description="Distinct paths reaching this component")
    fully_expanded: bool = False
    content_error: str | None = None

    @classmethod
    def from_summary(cls, summary: ComponentSummary) -> ComponentSummarySchema:
        return cls(
            key=summary.key,
            name=summary.name,
            kind=summary.kind.value,
            type=summary.type,
            sub_type=summary.sub_type,
            version=summary.version,
            step_count=summary.step_count,
            reference_count=summary.reference_count,
            referenced_by_count=summary.referenced_by_count,
            fully_expanded=summary.fully_expanded,
            content_error=summary.content_error,
        )
