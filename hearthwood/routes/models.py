"""Pydantic request models for API endpoints."""

from pydantic import BaseModel, Field


class CreateCharacter(BaseModel):
    name: str
    traits: list[str] = Field(default_factory=list)
    location: str


class CreateEvent(BaseModel):
    kind: str
    locations: list[str]
    description: str
