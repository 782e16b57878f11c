"""
climb/models/match_gap.py

Candidate-vs-role fit analysis returned by the match-gap flow.
"""

from typing import List, Literal

from pydantic import Field

from climb.models import CamelModel


class SuggestedEdit(CamelModel):
    area: Literal["summary", "skills", "experience", "projects"]
    suggestion: str


class SuggestedBullet(CamelModel):
    section: str
    bullet: str
    rationale: str


class MatchGapAnalysis(CamelModel):
    match_score: float = Field(ge=0, le=100)
    missing_keywords: List[str]
    suggested_edits: List[SuggestedEdit]
    suggested_bullets: List[SuggestedBullet]
