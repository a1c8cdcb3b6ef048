"""Prompt templates for the assist actions.

Every text action pairs a fixed system prompt with a user prompt rendered
from the request payload. Generation parameters are deterministic (fixed
seed) so identical payloads hit the same cache entry.
"""

from dataclasses import dataclass

from copilot_api.config import get_settings
from copilot_api.models import Application, CandidateProfile, JobData

# =============================================================================
# System Prompts
# =============================================================================

FIT_SUMMARY_SYSTEM_PROMPT = (
    "You are an expert career advisor analyzing job fit. Provide concise, actionable "
    "insights about how well a candidate matches a job posting. Focus on skills alignment, "
    "experience relevance, and growth potential. Be honest but encouraging."
)

COVER_LETTER_SYSTEM_PROMPT = (
    "You are a professional career coach helping candidates write compelling cover letters. "
    "Create personalized, authentic cover letters that highlight relevant experience and "
    "genuine interest. Keep it concise (3-4 paragraphs), professional, and avoid clichés."
)

RESUME_IMPROVEMENT_SYSTEM_PROMPT = (
    "You are an ATS optimization expert. Analyze resume bullets and suggest improvements for "
    "better ATS compatibility and impact. Focus on: action verbs, quantifiable results, "
    "relevant keywords, and clear formatting. Keep suggestions concise and actionable."
)

JD_GENERATION_SYSTEM_PROMPT = (
    "You are an expert recruiter creating inclusive, compelling job descriptions. Transform "
    "rough notes into well-structured JDs with clear sections: Overview, Responsibilities, "
    "Requirements, Nice-to-Haves, Benefits. Use inclusive language, avoid jargon, and focus "
    "on impact over credentials."
)

CANDIDATE_RANKING_SYSTEM_PROMPT = (
    "You are an expert recruiter evaluating candidates for job fit. Analyze each candidate's "
    "profile against job requirements and rank them by overall match quality. Consider skills "
    "alignment, experience relevance, and potential. Provide clear rationale for rankings."
)

SCREENING_QUESTIONS_SYSTEM_PROMPT = (
    "You are an expert interviewer creating targeted screening questions. Generate 3-5 "
    "specific questions that assess the candidate's fit for the role based on their "
    "background and the job requirements. Focus on practical scenarios and skill validation."
)


# =============================================================================
# User Prompts
# =============================================================================


def _join(values: list[str], sep: str = ", ") -> str:
    return sep.join(v for v in values if v)


def build_fit_summary_user_prompt(job: JobData, candidate: CandidateProfile) -> str:
    experience = _join([f"{e.title} at {e.company}" for e in candidate.experience], "; ")

    return f"""Analyze the fit between this candidate and job:

JOB:
Title: {job.title}
Level: {job.level}
Requirements: {_join(job.requirements)}
Description: {job.description}

CANDIDATE:
Skills: {_join(candidate.skills)}
Experience: {experience}

Provide a 2-3 sentence summary of the match quality, highlighting strengths and any gaps."""


def build_cover_letter_user_prompt(job: JobData, candidate: CandidateProfile) -> str:
    experience = "\n".join(
        f"{e.title} at {e.company}: {e.description}" for e in candidate.experience
    )

    return f"""Write a cover letter for this application:

JOB:
Title: {job.title}
Company: [Company Name]
Level: {job.level}
Requirements: {_join(job.requirements)}

CANDIDATE BACKGROUND:
Skills: {_join(candidate.skills)}
Experience:
{experience}

Write a professional cover letter (3-4 paragraphs) that:
1. Opens with enthusiasm for the specific role
2. Highlights 2-3 most relevant experiences
3. Explains why they're a great fit
4. Closes with a call to action"""


def build_resume_improvement_user_prompt(bullets: list[str]) -> str:
    bullet_list = "\n".join(f"{i}. {bullet}" for i, bullet in enumerate(bullets, start=1))

    return f"""Improve these resume bullets for ATS compatibility:

{bullet_list}

For each bullet, provide:
1. The improved version
2. One-line explanation of the change

Format as:
BULLET 1: [improved text]
Why: [explanation]"""


def build_jd_generation_user_prompt(notes: str) -> str:
    return f"""Create a structured job description from these notes:

{notes}

Format the output with these sections:
## Overview
[2-3 sentences about the role and team]

## Responsibilities
[5-7 bullet points of key responsibilities]

## Requirements
[Must-have qualifications and skills]

## Nice to Have
[Preferred but not required qualifications]

## Benefits
[Compensation range if mentioned, benefits, perks]

Use inclusive language and avoid gendered terms or unnecessary degree requirements."""


def _format_candidate_block(index: int, application: Application) -> str:
    profile = application.candidate_profile
    experience = _join([f"{e.title} at {e.company}" for e in profile.experience], "; ")
    education = _join(
        [f"{e.degree} in {e.field} from {e.institution}" for e in profile.education], "; "
    )
    return (
        f"CANDIDATE {index}:\n"
        f"Skills: {_join(profile.skills)}\n"
        f"Experience: {experience}\n"
        f"Education: {education}\n"
    )


def build_candidate_ranking_user_prompt(job: JobData, applications: list[Application]) -> str:
    candidates = "\n".join(
        _format_candidate_block(i, app) for i, app in enumerate(applications, start=1)
    )

    return f"""Rank these candidates for this job:

JOB:
Title: {job.title}
Level: {job.level}
Requirements: {_join(job.requirements)}

CANDIDATES:
{candidates}

For each candidate, provide:
1. Fit score (0-100)
2. Brief rationale (2-3 sentences)
3. Top strength
4. Potential concern

Format as:
CANDIDATE 1: Score [X/100]
Rationale: [explanation]
Strength: [key strength]
Concern: [if any]"""


def build_screening_questions_user_prompt(job: JobData, candidate: CandidateProfile) -> str:
    recent_role = candidate.experience[0].title if candidate.experience else ""

    return f"""Generate screening questions for this candidate-job match:

JOB:
Title: {job.title}
Level: {job.level}
Key Requirements: {_join(job.requirements[:5])}

CANDIDATE:
Skills: {_join(candidate.skills)}
Recent Role: {recent_role or "N/A"}

Create 3-5 specific screening questions that:
1. Validate key technical skills
2. Assess relevant experience
3. Explore problem-solving approach
4. Gauge cultural fit

Format as numbered list with brief context for each question."""


# =============================================================================
# Generation Options
# =============================================================================


@dataclass(frozen=True)
class PromptOptions:
    """Deterministic generation parameters for a text action."""

    model: str
    temperature: float
    seed: int
    cache_ttl: int


def build_prompt_options(seed: int | None = None) -> PromptOptions:
    """Build generation options from settings, optionally overriding the seed."""
    settings = get_settings()
    return PromptOptions(
        model=settings.ai_model,
        temperature=settings.ai_temperature,
        seed=settings.ai_seed if seed is None else seed,
        cache_ttl=settings.ai_cache_ttl,
    )
