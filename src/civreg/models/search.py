"""Pydantic models for fuzzy birth-record search."""

from pydantic import BaseModel, Field


class SearchQuery(BaseModel):
    """Free-text name plus an optional YYYY-MM-DD date of birth."""

    name: str = Field(description="Name to match against the child's full name")
    dob: str = Field(default="", description="Exact date of birth (YYYY-MM-DD), empty to ignore")


class Match(BaseModel):
    """A record paired with its similarity score."""

    record: dict[str, str] = Field(description="Matched record, column -> value")
    score: float = Field(ge=0.0, le=1.0, description="Similarity score in [0, 1]")

    model_config = {"frozen": True}
