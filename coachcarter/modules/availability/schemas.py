"""Availability submission schemas."""

from __future__ import annotations

from pydantic import BaseModel, EmailStr, Field

from coachcarter.core.enums import AvailabilityChoiceEnum


class AvailabilitySubmission(BaseModel):
    """Weekly availability sent from the link in the follow-up email."""

    booking_reference: str = Field(min_length=1, max_length=32)
    email: EmailStr
    availability: dict[str, AvailabilityChoiceEnum] = Field(default_factory=dict)
    frequency_preference: str | None = Field(default=None, max_length=100)
    notes: str | None = Field(default=None, max_length=2000)


class AvailabilitySubmitted(BaseModel):
    success: bool = True
