"""Core HR module — Employee model, schemas and onboarding service."""

from leavedesk.core_hr.models import Employee

__all__ = ["Employee"]
