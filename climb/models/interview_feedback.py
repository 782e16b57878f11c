"""
climb/models/interview_feedback.py

Coaching feedback on a single interview answer.
"""

from typing import Annotated, List, Literal

from pydantic import Field

from climb.models import CamelModel

Rating = Literal["strong", "good", "needs_work"]
FeedbackPoint = Annotated[str, Field(min_length=3, max_length=220)]


class InterviewFeedback(CamelModel):
    overall_rating: Rating
    score: float = Field(ge=0, le=100)
    feedback: str = Field(min_length=30, max_length=2200)
    strengths: List[FeedbackPoint] = Field(min_length=2, max_length=4)
    improvements: List[FeedbackPoint] = Field(min_length=2, max_length=4)
    rewrite_tip: str = Field(min_length=6, max_length=280)
    confidence: float = Field(ge=0, le=1)
