"""Configuration module."""

from interview_call.config.constants import SESSION, SessionConstants
from interview_call.config.settings import Settings, get_settings

__all__ = ["Settings", "get_settings", "SessionConstants", "SESSION"]
