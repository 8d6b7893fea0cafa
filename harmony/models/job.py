"""Job and job-link records tracking one dispatched operation."""

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, ClassVar

from sqlalchemy import Table

from harmony.db import Transaction, job_links_table, jobs_table
from harmony.errors import ValidationError
from harmony.models.record import Record


class JobStatus(StrEnum):
    CREATED = "created"
    DISPATCHED = "dispatched"
    SUCCESSFUL = "successful"
    FAILED = "failed"


TERMINAL_STATUSES = {JobStatus.SUCCESSFUL, JobStatus.FAILED}

MAX_MESSAGE_LENGTH = 4096

# DISPATCHED -> DISPATCHED covers multi-part callbacks
ALLOWED_TRANSITIONS: dict[JobStatus, set[JobStatus]] = {
    JobStatus.CREATED: {JobStatus.DISPATCHED, JobStatus.FAILED},
    JobStatus.DISPATCHED: {JobStatus.DISPATCHED, JobStatus.SUCCESSFUL, JobStatus.FAILED},
    JobStatus.SUCCESSFUL: set(),
    JobStatus.FAILED: set(),
}


@dataclass(kw_only=True)
class Job(Record):
    table: ClassVar[Table] = jobs_table

    request_id: str
    request: str
    username: str | None = None
    status: JobStatus = JobStatus.CREATED
    message: str | None = None
    progress: int = 0
    frontend: str | None = None
    service_name: str | None = None
    operation: dict[str, Any] | None = field(default=None, repr=False)

    def validate(self) -> list[str] | None:
        errors: list[str] = []
        if not self.request_id:
            errors.append("Job request_id must be set")
        if not self.request:
            errors.append("Job request URL must be set")
        if self.status not in set(JobStatus):
            errors.append(f"Job status '{self.status}' is not one of {[s.value for s in JobStatus]}")
        if not isinstance(self.progress, int) or not 0 <= self.progress <= 100:
            errors.append("Job progress must be an integer between 0 and 100")
        if self.message is not None and len(self.message) > MAX_MESSAGE_LENGTH:
            errors.append(f"Job message must be at most {MAX_MESSAGE_LENGTH} characters")
        return errors or None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def transition(self, status: JobStatus, message: str | None = None) -> None:
        """Move to ``status``; raises ValidationError for a disallowed transition."""

        current = JobStatus(self.status)
        if status not in ALLOWED_TRANSITIONS[current]:
            allowed = sorted(s.value for s in ALLOWED_TRANSITIONS[current])
            raise ValidationError(
                f"Invalid job status transition: {current.value} -> {status.value}. "
                f"Allowed from {current.value}: {allowed}"
            )
        self.status = status
        if message is not None:
            self.message = message
        if status is JobStatus.SUCCESSFUL:
            self.progress = 100

    def links(self, transaction: Transaction) -> list["JobLink"]:
        if self.id is None:
            return []
        return JobLink.find(transaction, job_id=self.id)

    @classmethod
    def by_request_id(cls, transaction: Transaction, request_id: str) -> "Job | None":
        return cls.find_one(transaction, request_id=request_id)

    def serialize(self, links: list["JobLink"] | None = None) -> dict[str, Any]:
        return {
            "jobID": self.request_id,
            "username": self.username,
            "status": JobStatus(self.status).value,
            "message": self.message,
            "progress": self.progress,
            "request": self.request,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
            "links": [link.serialize() for link in links or []],
        }


@dataclass(kw_only=True)
class JobLink(Record):
    table: ClassVar[Table] = job_links_table

    job_id: int | None = None
    href: str
    rel: str = "data"
    type: str | None = None
    title: str | None = None

    def validate(self) -> list[str] | None:
        errors = []
        if self.job_id is None:
            errors.append("Job link must reference a saved job")
        if not self.href:
            errors.append("Job link href must be set")
        return errors or None

    def serialize(self) -> dict[str, Any]:
        link = {"href": self.href, "rel": self.rel}
        if self.type:
            link["type"] = self.type
        if self.title:
            link["title"] = self.title
        return link
