"""Job-application AI flows.

Each flow builds a prompt, calls the completion provider through
call_llm_with_retry and, where the output is structured, extracts it with
parse_llm_json. Role parsing and match-gap analysis retry the whole
call+extract cycle and fall back to a schema-valid value when every cycle
fails. Resume summaries and interview feedback get one cycle and fall back
to deterministic templates. Cover letters and bullets surface typed errors.
"""

import asyncio
import json
import re
from typing import Any, Awaitable, Callable, Dict, List, Literal, Optional, Type, TypeVar

from climb.core.config import settings
from climb.core.errors import ConfigurationError, UnparseableResponseError
from climb.core.logging import log_event
from climb.features.ai.llm import CompletionClient, LLMMessage, call_llm_with_retry
from climb.features.ai.llm_json import JsonShape, parse_llm_json
from climb.features.ai.prompts import (
    COVER_LETTER_PROMPT,
    IMPROVE_BULLET_PROMPT,
    INTERVIEW_FEEDBACK_PROMPT,
    MATCH_GAP_PROMPT,
    RESUME_SUMMARY_PROMPT,
    ROLE_PARSER_PROMPT,
    SYSTEM_PROMPTS,
    fill_template,
)
from climb.models.cover_letter import CoverLetterContent
from climb.models.interview_feedback import InterviewFeedback, Rating
from climb.models.match_gap import MatchGapAnalysis, SuggestedBullet, SuggestedEdit
from climb.models.resume_summary import ResumeSummary
from climb.models.role import RoleParsed

T = TypeVar("T")
FallbackPolicy = Literal["empty", "heuristic", "raise"]
Sleep = Callable[[float], Awaitable[None]]

FALLBACK_STOP_WORDS = frozenset({
    "the", "and", "for", "with", "you", "your", "will", "that", "this", "from",
    "have", "are", "our", "all", "about", "into", "their", "they", "them", "job",
    "role", "years", "experience", "work", "ability", "skills", "team", "plus",
    "preferred", "required",
})

_BULLET_PREFIX_RE = re.compile(r"^[-*•\d.)\s]+")
_KEYWORD_RE = re.compile(r"[a-z][a-z0-9+.#/-]{2,}")
_REQUIREMENT_RE = re.compile(r"require|must|minimum|qualification|experience|proficient|skill", re.IGNORECASE)
_RESPONSIBILITY_RE = re.compile(
    r"build|design|develop|lead|manage|create|support|deliver|collaborat|maintain|analy", re.IGNORECASE
)
_MUST_HAVE_RE = re.compile(r"must|required|minimum|at least", re.IGNORECASE)
_NICE_TO_HAVE_RE = re.compile(r"preferred|nice to have|bonus|plus", re.IGNORECASE)
_WRAPPING_QUOTES_RE = re.compile(r"^[\"']|[\"']$")
_WHITESPACE_RE = re.compile(r"\s+")
_METRIC_RE = re.compile(r"\b\d+%|\b\d+\b")


def _messages(user_prompt: str, *system_keys: str) -> List[LLMMessage]:
    system = "\n".join(SYSTEM_PROMPTS[key] for key in system_keys)
    return [
        LLMMessage(role="system", content=system),
        LLMMessage(role="user", content=user_prompt),
    ]


async def _extract_with_retries(
    client: CompletionClient,
    messages: List[LLMMessage],
    schema: Type[T],
    shape: JsonShape,
    *,
    max_retries: int,
    retry_delay: Optional[float],
    sleep: Sleep,
    feature: str,
    temperature: float = 0.3,
    max_tokens: int = 2000,
) -> T:
    """Run completion+extraction cycles until one validates.

    Raises the last cycle's error when all max_retries + 1 cycles fail.
    Configuration errors end the loop immediately.
    """
    if max_retries < 0:
        raise ValueError("max_retries must be >= 0")

    last_error: Optional[Exception] = None
    for cycle in range(max_retries + 1):
        try:
            response = await call_llm_with_retry(
                client,
                messages,
                1,
                temperature=temperature,
                max_tokens=max_tokens,
                retry_delay=retry_delay,
                sleep=sleep,
            )
            return parse_llm_json(response.content, schema, shape)
        except ConfigurationError:
            raise
        except Exception as exc:
            last_error = exc
            log_event(
                "warning",
                "ai.extraction_cycle_failed",
                feature=feature,
                error_code=getattr(exc, "code", exc.__class__.__name__),
                extra={"cycle": cycle + 1, "max_cycles": max_retries + 1},
            )
    raise last_error


def build_fallback_role_parse(job_text: str) -> RoleParsed:
    """Keyword/line heuristic used when the model never returns a valid parse."""
    lines = []
    for line in job_text.split("\n"):
        cleaned = _BULLET_PREFIX_RE.sub("", line.strip())
        if len(cleaned) > 2:
            lines.append(cleaned)

    requirements = [line for line in lines if _REQUIREMENT_RE.search(line)][:8]
    responsibilities = [line for line in lines if _RESPONSIBILITY_RE.search(line)][:8]
    must_haves = [line for line in requirements if _MUST_HAVE_RE.search(line)][:6]
    nice_to_haves = [line for line in requirements if _NICE_TO_HAVE_RE.search(line)][:6]

    words = [w for w in _KEYWORD_RE.findall(job_text.lower()) if w not in FALLBACK_STOP_WORDS]
    keywords = list(dict.fromkeys(words))[:20]

    return RoleParsed(
        title="",
        company="",
        location="",
        responsibilities=responsibilities,
        requirements=requirements,
        keywords=keywords,
        must_haves=must_haves,
        nice_to_haves=nice_to_haves,
    )


async def parse_role(
    client: CompletionClient,
    job_text: str,
    *,
    max_retries: Optional[int] = None,
    fallback: Optional[FallbackPolicy] = None,
    retry_delay: Optional[float] = None,
    sleep: Sleep = asyncio.sleep,
) -> RoleParsed:
    """Extract a RoleParsed from a job posting.

    When every cycle fails the fallback policy decides the outcome:
    "empty" returns RoleParsed.empty(), "heuristic" scans the posting text,
    "raise" re-raises the last error.
    """
    retries = settings.ROLE_PARSE_MAX_RETRIES if max_retries is None else max_retries
    if retries < 0:
        raise ValueError("ROLE_PARSE_MAX_RETRIES must be >= 0")
    policy = fallback or settings.ROLE_PARSE_FALLBACK
    prompt = fill_template(ROLE_PARSER_PROMPT, {"JOB_TEXT": job_text})

    try:
        return await _extract_with_retries(
            client,
            _messages(prompt, "SAFETY"),
            RoleParsed,
            "object",
            max_retries=retries,
            retry_delay=retry_delay,
            sleep=sleep,
            feature="parse-role",
        )
    except ConfigurationError:
        raise
    except Exception as exc:
        if policy == "raise":
            raise
        log_event(
            "error",
            "ai.role_parse_fallback",
            feature="parse-role",
            error_code=getattr(exc, "code", exc.__class__.__name__),
            extra={"policy": policy},
        )
        if policy == "heuristic":
            return build_fallback_role_parse(job_text)
        return RoleParsed.empty()


def build_fallback_match_gap(role: Dict[str, Any], profile: Dict[str, Any]) -> MatchGapAnalysis:
    """Keyword-coverage estimate used when the model never returns a valid analysis."""
    role_keywords = role.get("keywords") if isinstance(role.get("keywords"), list) else []
    user_skills = {str(s).lower() for s in profile.get("skills") or [] if str(s).strip()}
    missing = [kw for kw in role_keywords if str(kw).lower() not in user_skills][:10]

    coverage = (len(role_keywords) - len(missing)) / len(role_keywords) if role_keywords else 0.5
    experience_boost = 20 if profile.get("experiences") else 0
    project_boost = 10 if profile.get("projects") else 0
    summary_boost = 10 if profile.get("summary") else 0
    raw_score = round(coverage * 60 + experience_boost + project_boost + summary_boost)

    return MatchGapAnalysis(
        match_score=max(35, min(95, raw_score)),
        missing_keywords=missing,
        suggested_edits=[
            SuggestedEdit(
                area="skills",
                suggestion=f"Add evidence of {kw} in your skills section or project bullets where relevant.",
            )
            for kw in missing[:3]
        ],
        suggested_bullets=[
            SuggestedBullet(
                section="Work Experience",
                bullet=f"Demonstrated {kw} by leading a measurable initiative aligned with team goals.",
                rationale=f"Addresses keyword gap for {kw} while keeping the bullet outcome-focused.",
            )
            for kw in missing[:2]
        ],
    )


async def analyze_match_gap(
    client: CompletionClient,
    role: Dict[str, Any],
    profile: Dict[str, Any],
    *,
    max_retries: int = 2,
    retry_delay: Optional[float] = None,
    sleep: Sleep = asyncio.sleep,
) -> MatchGapAnalysis:
    if max_retries < 0:
        raise ValueError("max_retries must be >= 0")
    prompt = fill_template(MATCH_GAP_PROMPT, {
        "PROFILE": json.dumps(profile, indent=2, default=str),
        "ROLE": json.dumps(role, indent=2, default=str),
    })
    try:
        return await _extract_with_retries(
            client,
            _messages(prompt, "SAFETY"),
            MatchGapAnalysis,
            "object",
            max_retries=max_retries,
            retry_delay=retry_delay,
            sleep=sleep,
            feature="match-gap",
        )
    except ConfigurationError:
        raise
    except Exception as exc:
        log_event(
            "error",
            "ai.match_gap_fallback",
            feature="match-gap",
            error_code=getattr(exc, "code", exc.__class__.__name__),
        )
        return build_fallback_match_gap(role, profile)


async def generate_cover_letter(
    client: CompletionClient,
    parsed: RoleParsed,
    resume_summary: Optional[str] = None,
    *,
    tone: str = "professional",
    retry_delay: Optional[float] = None,
    sleep: Sleep = asyncio.sleep,
) -> CoverLetterContent:
    role_str = json.dumps({
        "title": parsed.title,
        "company": parsed.company,
        "location": parsed.location,
        "requirements": parsed.requirements,
        "keywords": parsed.keywords,
        "responsibilities": parsed.responsibilities,
    }, indent=2)
    if resume_summary and resume_summary.strip():
        resume_str = f"Candidate summary: {resume_summary.strip()}"
    else:
        resume_str = "Candidate with relevant experience and skills for the role."

    prompt = fill_template(COVER_LETTER_PROMPT, {"RESUME": resume_str, "ROLE": role_str, "TONE": tone})
    response = await call_llm_with_retry(
        client,
        _messages(prompt, "SAFETY"),
        2,
        temperature=0.6,
        max_tokens=1500,
        retry_delay=retry_delay,
        sleep=sleep,
    )
    return parse_llm_json(response.content, CoverLetterContent, "object")


async def improve_bullet(
    client: CompletionClient,
    bullet: str,
    instruction: str,
    *,
    role_title: Optional[str] = None,
    company: Optional[str] = None,
    retry_delay: Optional[float] = None,
    sleep: Sleep = asyncio.sleep,
) -> str:
    prompt = fill_template(IMPROVE_BULLET_PROMPT, {
        "BULLET": bullet,
        "ROLE_TITLE": role_title or "N/A",
        "COMPANY": company or "N/A",
        "INSTRUCTION": instruction,
    })
    response = await call_llm_with_retry(
        client,
        _messages(prompt, "SAFETY", "ATS_SAFE"),
        2,
        temperature=0.6,
        max_tokens=200,
        retry_delay=retry_delay,
        sleep=sleep,
    )
    improved = _WRAPPING_QUOTES_RE.sub("", response.content.strip())
    if not improved:
        raise UnparseableResponseError("Model returned an empty bullet")
    return improved


def _clean_line(value: Optional[str]) -> str:
    return _WHITESPACE_RE.sub(" ", str(value or "")).strip()


def build_fallback_resume_summary(resume: Dict[str, Any]) -> ResumeSummary:
    """Template summary assembled from the resume fields alone."""
    experiences = resume.get("experiences") or []
    first_title = experiences[0].get("title") if experiences else None
    role = _clean_line(resume.get("target_role")) or _clean_line(first_title) or "professional role"
    key_skills = [skill for skill in resume.get("skills") or [] if skill][:5]
    exp_count = sum(
        1 for item in experiences if _clean_line(item.get("title")) or _clean_line(item.get("description"))
    )

    sentences = [
        f"Results-oriented {role} with hands-on experience delivering cross-functional outcomes "
        "in fast-moving environments."
    ]
    if exp_count:
        noun = "entry" if exp_count == 1 else "entries"
        sentences.append(
            f"Brings {exp_count} documented experience {noun} with a focus on execution quality, "
            "stakeholder alignment, and measurable progress."
        )
    else:
        sentences.append("Builds structured, execution-focused workflows with clear ownership and iterative improvement.")
    if key_skills:
        sentences.append(
            f"Core strengths include {', '.join(key_skills)}, with an emphasis on practical impact "
            "and continuous improvement."
        )
    else:
        sentences.append("Known for strong problem-solving, communication, and disciplined delivery against priorities.")

    return ResumeSummary(
        summary=" ".join(sentences),
        focus_areas=[
            "Tie each experience bullet to outcomes and measurable impact",
            "Use role-specific keywords in summary and skill highlights",
            "Keep narrative concise and aligned to target job requirements",
            f"Prioritize evidence-backed use of {key_skills[0]}"
            if key_skills
            else "Highlight strongest technical and domain capabilities",
        ],
        confidence=0.57,
    )


async def summarize_resume(
    client: CompletionClient,
    resume: Dict[str, Any],
    *,
    retry_delay: Optional[float] = None,
    sleep: Sleep = asyncio.sleep,
) -> ResumeSummary:
    """Draft a resume summary; any extraction failure returns the template summary.

    `resume` uses snake_case keys: target_role, personal_info, summary,
    skills, experiences, education.
    """
    prompt = fill_template(RESUME_SUMMARY_PROMPT, {"RESUME_CONTEXT": json.dumps(resume, indent=2, default=str)})
    try:
        drafted = await _extract_with_retries(
            client,
            _messages(prompt, "SAFETY", "ATS_SAFE"),
            ResumeSummary,
            "object",
            max_retries=0,
            retry_delay=retry_delay,
            sleep=sleep,
            feature="resume-summary",
            temperature=0.45,
            max_tokens=800,
        )
    except ConfigurationError:
        raise
    except Exception as exc:
        log_event(
            "error",
            "ai.resume_summary_fallback",
            feature="resume-summary",
            error_code=getattr(exc, "code", exc.__class__.__name__),
        )
        return build_fallback_resume_summary(resume)

    focus_areas = [line for line in (_clean_line(item) for item in drafted.focus_areas) if line][:6]
    return drafted.model_copy(update={"summary": _clean_line(drafted.summary), "focus_areas": focus_areas})


def _rating_for(score: float) -> Rating:
    if score >= 82:
        return "strong"
    if score >= 62:
        return "good"
    return "needs_work"


def build_fallback_interview_feedback(answer: str) -> InterviewFeedback:
    """Rubric score from structure, metrics, ownership and outcome wording."""
    text = answer.strip()
    lower = text.lower()
    words = len(text.split())

    has_structure = any(w in lower for w in ("situation", "task", "action", "result", "first", "then", "finally"))
    has_metrics = bool(_METRIC_RE.search(text))
    has_ownership = any(
        p in lower for p in ("i led", "i built", "i designed", "i delivered", "i implemented", "i owned")
    )
    has_outcome = any(w in lower for w in ("result", "impact", "improved", "reduced", "increased", "delivered"))

    score = 35 + min(25, int(words / 12 + 0.5))
    score += 14 if has_structure else 0
    score += 12 if has_metrics else 0
    score += 9 if has_ownership else 0
    score += 10 if has_outcome else 0
    score = max(0, min(100, score))
    rating = _rating_for(score)

    strengths = []
    if words >= 90:
        strengths.append("Answer provides enough detail to evaluate your approach")
    if has_structure:
        strengths.append("Response shows an organized flow that is easy to follow")
    if has_ownership:
        strengths.append("You describe your direct contribution clearly")
    if has_metrics:
        strengths.append("You include quantitative evidence to support impact")
    if len(strengths) < 2:
        strengths += ["Response addresses the question directly", "Tone is professional and focused"]

    improvements = []
    if not has_structure:
        improvements.append("Use an explicit STAR sequence: Situation, Task, Action, Result")
    if not has_metrics:
        improvements.append("Add one measurable outcome to make your impact credible")
    if words < 70:
        improvements.append("Add more context on constraints, decisions, and tradeoffs")
    if not has_outcome:
        improvements.append("Close with a clear outcome and what changed because of your actions")
    if len(improvements) < 2:
        improvements += [
            "Reduce filler and keep each sentence tied to impact",
            "End with one lesson learned or process improvement",
        ]

    feedback = " ".join([
        f"Your answer is rated {rating.replace('_', ' ')} with a score of {score}/100.",
        "Structure is reasonably clear, which makes your story easier for an interviewer to track."
        if has_structure
        else "Structure is currently loose; interviewers may struggle to follow the full story.",
        "Including quantitative evidence strengthens your credibility."
        if has_metrics
        else "The response needs at least one concrete metric to demonstrate impact.",
        "Refine the answer to focus on your decision-making, execution, and measurable outcomes.",
    ])

    return InterviewFeedback(
        overall_rating=rating,
        score=score,
        feedback=feedback,
        strengths=strengths[:4],
        improvements=improvements[:4],
        rewrite_tip=(
            "Tighten to 4-6 sentences: context, your action, measurable result, and one lesson."
            if has_metrics
            else "Rewrite the closing sentence to include one specific number that quantifies the result."
        ),
        confidence=0.6,
    )


async def review_interview_answer(
    client: CompletionClient,
    category: str,
    question: str,
    answer: str,
    *,
    retry_delay: Optional[float] = None,
    sleep: Sleep = asyncio.sleep,
) -> InterviewFeedback:
    prompt = fill_template(INTERVIEW_FEEDBACK_PROMPT, {"CATEGORY": category, "QUESTION": question, "ANSWER": answer})
    try:
        return await _extract_with_retries(
            client,
            _messages(prompt, "SAFETY"),
            InterviewFeedback,
            "object",
            max_retries=0,
            retry_delay=retry_delay,
            sleep=sleep,
            feature="interview-feedback",
            temperature=0.35,
            max_tokens=1100,
        )
    except ConfigurationError:
        raise
    except Exception as exc:
        log_event(
            "error",
            "ai.interview_feedback_fallback",
            feature="interview-feedback",
            error_code=getattr(exc, "code", exc.__class__.__name__),
        )
        return build_fallback_interview_feedback(answer)
