"""Pydantic models for API requests and responses."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from copilot_api.errors import ErrorCode

# =============================================================================
# Assist Actions
# =============================================================================


class AssistAction(str, Enum):
    """Assist actions exposed as ``/api/ai/<value>`` sub-routes."""

    FIT_SUMMARY = "fit-summary"
    COVER_LETTER = "cover-letter"
    RESUME_IMPROVE = "resume-improve"
    JD_GENERATE = "jd-generate"
    SHORTLIST = "shortlist"
    SCREENING_QUESTIONS = "screening-questions"
    IMAGE = "image"


# =============================================================================
# Domain Payloads
# =============================================================================


class Compensation(BaseModel):
    """Salary range attached to a job posting."""

    min: float | None = Field(default=None, description="Lower bound")
    max: float | None = Field(default=None, description="Upper bound")
    currency: str = Field(default="USD", description="ISO currency code")


class JobData(BaseModel):
    """Job posting fields used to build prompts."""

    title: str = Field(default="", description="Job title")
    level: str = Field(default="", description="Seniority level")
    location: str = Field(default="", description="Job location")
    type: str = Field(default="", description="Employment type")
    remote: bool = Field(default=False, description="Remote friendly")
    description: str = Field(default="", description="Full job description")
    requirements: list[str] = Field(default_factory=list, description="Hard requirements")
    compensation: Compensation | None = Field(default=None, description="Salary range")
    benefits: list[str] = Field(default_factory=list, description="Benefits")


class ExperienceEntry(BaseModel):
    """A single work experience entry."""

    company: str = Field(default="", description="Company name")
    title: str = Field(default="", description="Role title")
    description: str = Field(default="", description="What the candidate did")


class EducationEntry(BaseModel):
    """A single education entry."""

    institution: str = Field(default="", description="School or university")
    degree: str = Field(default="", description="Degree")
    field: str = Field(default="", description="Field of study")


class CandidateProfile(BaseModel):
    """Candidate profile fields used to build prompts."""

    name: str | None = Field(default=None, description="Candidate name")
    location: str | None = Field(default=None, description="Candidate location")
    skills: list[str] = Field(default_factory=list, description="Skills")
    experience: list[ExperienceEntry] = Field(default_factory=list, description="Work history")
    education: list[EducationEntry] = Field(default_factory=list, description="Education")


class Application(BaseModel):
    """A job application considered for the shortlist."""

    model_config = ConfigDict(populate_by_name=True)

    candidate_profile: CandidateProfile = Field(
        default_factory=CandidateProfile, alias="candidateProfile"
    )
    resume_data: Any = Field(default=None, alias="resumeData")
    cover_letter: str | None = Field(default=None, alias="coverLetter")


# =============================================================================
# Assist Request Bodies
# =============================================================================
# Required fields are optional at the schema level so that the routes can
# answer with the exact validation messages clients already display.


class JobCandidateRequest(BaseModel):
    """Body for fit-summary, cover-letter and screening-questions."""

    model_config = ConfigDict(populate_by_name=True)

    job_data: JobData | None = Field(default=None, alias="jobData")
    candidate_profile: CandidateProfile | None = Field(default=None, alias="candidateProfile")


class ResumeImproveRequest(BaseModel):
    """Body for resume-improve."""

    bullets: list[str] | None = Field(default=None, description="Resume bullets to improve")

    @field_validator("bullets", mode="before")
    @classmethod
    def _non_list_is_missing(cls, value: Any) -> Any:
        return value if isinstance(value, list) else None


class JDGenerateRequest(BaseModel):
    """Body for jd-generate."""

    notes: str | None = Field(default=None, description="Free-text recruiter notes")


class ShortlistRequest(BaseModel):
    """Body for shortlist."""

    model_config = ConfigDict(populate_by_name=True)

    job_data: JobData | None = Field(default=None, alias="jobData")
    applications: list[Application] | None = Field(default=None)

    @field_validator("applications", mode="before")
    @classmethod
    def _non_list_is_missing(cls, value: Any) -> Any:
        return value if isinstance(value, list) else None


class ImageRequest(BaseModel):
    """Body for image."""

    prompt: str | None = Field(default=None, description="Image prompt")
    width: int | None = Field(default=None, gt=0, le=4096)
    height: int | None = Field(default=None, gt=0, le=4096)
    seed: int | None = Field(default=None)


# =============================================================================
# Assist Response
# =============================================================================


class CopilotAction(BaseModel):
    """A UI affordance attached to a response; the panel only reports clicks."""

    label: str = Field(..., description="Button label")
    type: Literal["primary", "secondary"] = Field(..., description="Button style")
    handler: str = Field(..., description="Handler name dispatched on click")


class AssistResponse(BaseModel):
    """Response shape shared by every assist route and the gateway client.

    ``error`` marks a terminal failure; ``warning`` marks a degraded success
    served from a cached result.
    """

    model_config = ConfigDict(populate_by_name=True)

    summary: str = Field(default="", description="Human readable synthesis")
    items: list[str] | None = Field(default=None, description="Expandable detail entries")
    actions: list[CopilotAction] | None = Field(default=None, description="UI affordances")
    image_url: str | None = Field(default=None, alias="imageUrl", description="Generated image")
    error: str | None = Field(default=None, description="Failure headline")
    fallback: str | None = Field(default=None, description="Remediation hint for an error")
    warning: str | None = Field(default=None, description="Degraded-service advisory")

    @property
    def is_error(self) -> bool:
        """True when the response is a terminal failure."""
        return bool(self.error)

    @property
    def is_degraded(self) -> bool:
        """True when the response succeeded from a cached result."""
        return bool(self.warning) and not self.is_error

    def to_wire(self) -> dict[str, Any]:
        """Serialize with camelCase keys, dropping unset optionals."""
        return self.model_dump(by_alias=True, exclude_none=True)


class ErrorResponse(BaseModel):
    """Body of every non-2xx response."""

    error: str = Field(..., description="Failure headline")
    fallback: str | None = Field(default=None, description="Remediation hint")
    code: ErrorCode = Field(..., description="Machine readable code")
    details: Any = Field(default=None, description="Extra details")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    path: str | None = Field(default=None, description="Request path")


# =============================================================================
# Health API Models
# =============================================================================


class HealthChecks(BaseModel):
    """Individual dependency checks."""

    cache: bool = Field(..., description="Response cache reachable")
    ai_service: bool = Field(..., description="Generation provider accepting calls")


class HealthResponse(BaseModel):
    """Response for health check endpoint."""

    status: Literal["healthy", "degraded", "unhealthy"] = Field(..., description="Service status")
    checks: HealthChecks = Field(..., description="Dependency checks")
    circuit_state: str = Field(..., description="Provider circuit breaker state")
    cached_entries: int = Field(..., description="Entries in the response cache")
    uptime_seconds: float = Field(..., description="Seconds since startup")
    version: str = Field(..., description="API version")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
