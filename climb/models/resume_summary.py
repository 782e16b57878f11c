"""
climb/models/resume_summary.py

ATS-safe professional summary drafted from a resume.
"""

from typing import Annotated, List

from pydantic import Field

from climb.models import CamelModel

FocusArea = Annotated[str, Field(min_length=2, max_length=180)]


class ResumeSummary(CamelModel):
    summary: str = Field(min_length=20, max_length=1400)
    focus_areas: List[FocusArea] = Field(min_length=3, max_length=6)
    confidence: float = Field(ge=0, le=1)
