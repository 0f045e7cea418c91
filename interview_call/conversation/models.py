"""Conversation models - session input and the provisioned resource."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class SessionInput(BaseModel):
    """Candidate context used to personalize the interview."""

    model_config = ConfigDict(extra="forbid", str_strip_whitespace=True, frozen=True)

    name: str = Field(..., min_length=1, description="Candidate full name")
    project_title: str = Field(..., min_length=1, description="Main project title")
    project_summary: str = Field(..., min_length=1, description="Brief project description")
    skills: str = Field(..., min_length=1, description="Technical skills")
    certificates: str = Field("", description="Professional certifications")
    education: str = Field(..., min_length=1, description="Educational background")
    experience: str = Field(..., min_length=1, description="Relevant work experience")

    def to_context(self) -> dict[str, Any]:
        """Conversational context handed to the interviewer persona."""
        return {
            "candidate_name": self.name,
            "project_title": self.project_title,
            "project_summary": self.project_summary,
            "skills": self.skills,
            "certificates": self.certificates,
            "education": self.education,
            "experience": self.experience,
            "current_stage": "1",
            "interview_score": None,
            "greeting": "Good Morning",
        }

    def greeting(self) -> str:
        """Opening line spoken by the interviewer."""
        return (
            f"Hello {self.name}! I'm your AI interviewer. I'll be conducting this "
            f"technical interview today. I'm excited to learn about your background "
            f"and experience with {self.skills}. Let's start with a brief "
            f"introduction - could you tell me about your professional journey and "
            f"what motivates you in your career?"
        )


@dataclass(frozen=True)
class ConversationResource:
    """A remote conversation allocated for one interview."""

    conversation_id: str
    conversation_url: str
    created_at: datetime
    status: str | None = None
    name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "conversation_id": self.conversation_id,
            "conversation_url": self.conversation_url,
            "created_at": self.created_at.isoformat(),
            "status": self.status,
            "name": self.name,
        }
