"""AI agent API.

Every route consumes the caller's per-feature AI quota before touching the
completion provider and echoes the quota state in X-RateLimit-* headers.
"""

from typing import Annotated, Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Request, Response
from pydantic import Field, model_validator

from climb.core.auth import get_current_user_id
from climb.core.errors import AIRateLimitError, ConfigurationError, ValidationError
from climb.core.logging import get_request_id
from climb.features.ai.llm import CompletionClient
from climb.features.ai.service import (
    analyze_match_gap,
    generate_cover_letter,
    improve_bullet,
    parse_role,
    review_interview_answer,
    summarize_resume,
)
from climb.features.usage.service import AIUsageMeter, UsageDecision, build_rate_limit_headers
from climb.models import CamelModel
from climb.models.role import RoleParsed

router = APIRouter(prefix="/api/agent", tags=["agent"])


class ParseRoleRequest(CamelModel):
    job_text: str = Field(min_length=10)


class BulletContext(CamelModel):
    role_title: Optional[str] = None
    company: Optional[str] = None


class ImproveBulletRequest(CamelModel):
    bullet: str = Field(min_length=8, max_length=500)
    instruction: str = Field(min_length=3, max_length=220)
    context: Optional[BulletContext] = None


class CandidateProfile(CamelModel):
    headline: Optional[str] = None
    target_roles: List[str] = Field(default_factory=list)
    skills: List[str] = Field(default_factory=list)
    experiences: List[Dict[str, Any]] = Field(default_factory=list)
    projects: List[Dict[str, Any]] = Field(default_factory=list)
    summary: Optional[str] = None


class MatchGapRequest(CamelModel):
    role: Optional[RoleParsed] = None
    job_text: Optional[str] = Field(default=None, min_length=10)
    profile: CandidateProfile

    @model_validator(mode="after")
    def _role_or_text(self) -> "MatchGapRequest":
        if self.role is None and not self.job_text:
            raise ValueError("Provide role or jobText")
        return self


class CoverLetterRequest(CamelModel):
    job_text: Optional[str] = Field(default=None, min_length=20)
    parsed: Optional[RoleParsed] = None
    resume_summary: Optional[str] = None


class PersonalInfo(CamelModel):
    full_name: Optional[str] = Field(default=None, max_length=120)
    location: Optional[str] = Field(default=None, max_length=120)
    linkedin: Optional[str] = Field(default=None, max_length=200)
    portfolio: Optional[str] = Field(default=None, max_length=200)


class ResumeExperience(CamelModel):
    title: Optional[str] = Field(default=None, max_length=120)
    company: Optional[str] = Field(default=None, max_length=120)
    description: Optional[str] = Field(default=None, max_length=2000)


class ResumeEducation(CamelModel):
    school: Optional[str] = Field(default=None, max_length=160)
    degree: Optional[str] = Field(default=None, max_length=120)
    field: Optional[str] = Field(default=None, max_length=120)


class ResumeSummaryRequest(CamelModel):
    target_role: Optional[str] = Field(default=None, max_length=160)
    personal_info: Optional[PersonalInfo] = None
    summary: Optional[str] = Field(default=None, max_length=2000)
    skills: List[Annotated[str, Field(max_length=100)]] = Field(default_factory=list, max_length=80)
    experiences: List[ResumeExperience] = Field(default_factory=list, max_length=30)
    education: List[ResumeEducation] = Field(default_factory=list, max_length=20)


class InterviewFeedbackRequest(CamelModel):
    category: str = Field(min_length=2, max_length=80)
    question: str = Field(min_length=8, max_length=1000)
    answer: str = Field(min_length=20, max_length=6000)


def get_usage_meter(request: Request) -> AIUsageMeter:
    return request.app.state.usage_meter


def get_completion_client(request: Request) -> CompletionClient:
    return request.app.state.completion_client


async def _consume_quota(
    request: Request,
    response: Response,
    meter: AIUsageMeter,
    user_id: str,
    feature: str,
    label: str,
) -> UsageDecision:
    usage = await meter.consume(user_id, feature)
    headers = build_rate_limit_headers(usage)
    if not usage.allowed:
        rid = getattr(request.state, "request_id", None) or get_request_id()
        suggestion = (
            "Upgrade to Pro for higher AI throughput."
            if usage.plan == "free"
            else "Please retry after the reset window."
        )
        raise AIRateLimitError(
            f"AI rate limit exceeded for {label}",
            request_id=rid,
            details={"plan": usage.plan, "retryAfterSec": usage.retry_after_seconds, "suggestion": suggestion},
            headers=headers,
        )
    response.headers.update(headers)
    return usage


@router.post("/parse-role")
async def parse_role_endpoint(
    body: ParseRoleRequest,
    request: Request,
    response: Response,
    user_id: str = Depends(get_current_user_id),
    meter: AIUsageMeter = Depends(get_usage_meter),
    client: CompletionClient = Depends(get_completion_client),
):
    await _consume_quota(request, response, meter, user_id, "parse-role", "role parsing")
    parsed = await parse_role(client, body.job_text)
    return {"success": True, "parsed": parsed.model_dump(by_alias=True)}


@router.post("/match-gap")
async def match_gap_endpoint(
    body: MatchGapRequest,
    request: Request,
    response: Response,
    user_id: str = Depends(get_current_user_id),
    meter: AIUsageMeter = Depends(get_usage_meter),
    client: CompletionClient = Depends(get_completion_client),
):
    await _consume_quota(request, response, meter, user_id, "match-gap", "match analysis")
    role = body.role.model_dump(by_alias=True) if body.role else {"job_text": body.job_text}
    analysis = await analyze_match_gap(client, role, body.profile.model_dump(by_alias=False))
    return {"success": True, "analysis": analysis.model_dump(by_alias=True)}


@router.post("/improve-bullet")
async def improve_bullet_endpoint(
    body: ImproveBulletRequest,
    request: Request,
    response: Response,
    user_id: str = Depends(get_current_user_id),
    meter: AIUsageMeter = Depends(get_usage_meter),
    client: CompletionClient = Depends(get_completion_client),
):
    await _consume_quota(request, response, meter, user_id, "improve-bullet", "bullet optimization")
    context = body.context or BulletContext()
    improved = await improve_bullet(
        client,
        body.bullet,
        body.instruction,
        role_title=context.role_title,
        company=context.company,
    )
    return {"success": True, "improvedBullet": improved}


@router.post("/cover-letter-from-posting")
async def cover_letter_endpoint(
    body: CoverLetterRequest,
    request: Request,
    response: Response,
    user_id: str = Depends(get_current_user_id),
    meter: AIUsageMeter = Depends(get_usage_meter),
    client: CompletionClient = Depends(get_completion_client),
):
    if not client.configured:
        raise ConfigurationError("LLM not configured. Add LLM_API_KEY to enable AI-generated cover letters.")
    if body.parsed is None and not body.job_text:
        raise ValidationError("Provide jobText or parsed role data")

    await _consume_quota(request, response, meter, user_id, "generate-pack", "cover letters")
    parsed = body.parsed or await parse_role(client, body.job_text)
    letter = await generate_cover_letter(client, parsed, body.resume_summary)
    return {
        "company": parsed.company or "",
        "title": parsed.title or "",
        "body": letter.body,
        "subject": letter.subject,
    }


@router.post("/resume-summary")
async def resume_summary_endpoint(
    body: ResumeSummaryRequest,
    request: Request,
    response: Response,
    user_id: str = Depends(get_current_user_id),
    meter: AIUsageMeter = Depends(get_usage_meter),
    client: CompletionClient = Depends(get_completion_client),
):
    await _consume_quota(request, response, meter, user_id, "resume-summary", "resume summary generation")
    drafted = await summarize_resume(client, body.model_dump(exclude_none=True))
    return {
        "success": True,
        "summary": drafted.summary,
        "focusAreas": drafted.focus_areas,
        "confidence": drafted.confidence,
    }


@router.post("/interview-feedback")
async def interview_feedback_endpoint(
    body: InterviewFeedbackRequest,
    request: Request,
    response: Response,
    user_id: str = Depends(get_current_user_id),
    meter: AIUsageMeter = Depends(get_usage_meter),
    client: CompletionClient = Depends(get_completion_client),
):
    await _consume_quota(request, response, meter, user_id, "interview-feedback", "interview feedback")
    feedback = await review_interview_answer(client, body.category, body.question, body.answer)
    return {"success": True, "feedback": feedback.model_dump(by_alias=True)}
