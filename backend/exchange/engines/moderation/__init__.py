"""Reviewer-facing moderation and submitter-facing status views."""

from .gateway import ModerationGateway, ModerationResult, parse_status
from .status_view import build_status_view

__all__ = [
    "ModerationGateway",
    "ModerationResult",
    "parse_status",
    "build_status_view",
]
