"""Exception types for the generation job pipeline."""

from typing import Any, Optional


class GenerationJobError(Exception):
    """Base exception for generation jobs."""

    def __init__(self, message: str, details: Any = None):
        self.message = message
        self.details = details
        super().__init__(message)


class ValidationError(GenerationJobError):
    """Request payload does not match the job kind's schema. Never enqueued."""


class TransientProviderError(GenerationJobError):
    """A provider call failed during execution; the queue retry policy applies."""

    def __init__(self, message: str, provider: Optional[str] = None):
        self.provider = provider
        super().__init__(message)


class ExhaustedRetriesError(GenerationJobError):
    """All attempts for a job were used up. Terminal."""

    def __init__(self, job_id: str, attempts: int, last_error: str):
        self.job_id = job_id
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(last_error)


class NotFoundError(GenerationJobError):
    """Neither the queue nor the record store knows the job id."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job '{job_id}' not found")


class JobFailedError(GenerationJobError):
    """Raised by the client poller when a job ends failed or stuck."""

    def __init__(self, job_id: str, status: str, error: Optional[str] = None):
        self.job_id = job_id
        self.status = status
        super().__init__(error or f"Generation job {job_id} {status}")


class PollTimeoutError(GenerationJobError):
    """The client poller ran out of attempts or time before a terminal state."""

    def __init__(self, job_id: str, attempts: int, last_status: Optional[str] = None):
        self.job_id = job_id
        self.attempts = attempts
        self.last_status = last_status
        super().__init__(
            f"Gave up polling job {job_id} after {attempts} attempt(s) "
            f"(last status: {last_status or 'unknown'})"
        )


class JobStoreError(GenerationJobError):
    """The job record store is misconfigured or unreachable."""


class JobAccessError(GenerationJobError):
    """The job exists but belongs to another tenant."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Not authorized to view job '{job_id}'")
