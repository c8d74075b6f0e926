"""
Validation Models

Integrity checks never raise. They report what they found so the caller
can warn the user, and the ledger keeps working with its documented
fallbacks.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ValidationIssue(BaseModel):
    """A single integrity issue found in a snapshot."""

    field: str = Field(
        ...,
        description="Field with the issue (e.g. 'toAccountId')"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'dangling_reference', 'duplicate')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    record_id: Optional[str] = Field(
        default=None,
        description="ID of the account/transaction/template the issue is about"
    )


class ValidationResult(BaseModel):
    """Outcome of validating a whole snapshot."""

    validated_at: datetime = Field(
        default_factory=datetime.utcnow
    )
    issues: list[ValidationIssue] = Field(
        default_factory=list,
        description="All integrity issues found"
    )

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def warning_count(self) -> int:
        return sum(1 for issue in self.issues if issue.severity == "warning")

    @property
    def is_valid(self) -> bool:
        return not self.has_errors
