"""Submission backend client."""

from exam_engine.submission.client import SubmissionClient

__all__ = ["SubmissionClient"]
