"""Input validation and sanitization utilities."""

from .sanitize import (
    sanitize_action,
    sanitize_job_id,
    sanitize_plugin_name,
    sanitize_status,
    sanitize_url,
    validate_job_request,
)

__all__ = [
    "sanitize_action",
    "sanitize_job_id",
    "sanitize_plugin_name",
    "sanitize_status",
    "sanitize_url",
    "validate_job_request",
]
