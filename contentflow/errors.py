"""Exception hierarchy for the job orchestration pipeline.

Errors raised inside a single job's pipeline are caught at the executor
boundary and end up as the job's `error_message`; they never reach sibling
jobs in a batch.
"""

from __future__ import annotations


class ContentFlowError(Exception):
    """Base class for all ContentFlow errors."""


class JobNotFoundError(ContentFlowError):
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class OrderNotFoundError(ContentFlowError):
    def __init__(self, order_id: str | None):
        self.order_id = order_id
        super().__init__(f"Content order not found: {order_id}")


class UnknownJobTypeError(ContentFlowError):
    def __init__(self, job_type: str):
        self.job_type = job_type
        super().__init__(f"Unknown job type: {job_type}")


class InvalidTransitionError(ContentFlowError):
    def __init__(self, job_id: str, from_status: str, to_status: str):
        self.job_id = job_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(f"Job {job_id} cannot move from {from_status} to {to_status}")


class StageError(ContentFlowError):
    """A pipeline stage returned a non-2xx response or could not be reached."""

    def __init__(self, stage: str, status_code: int | None = None, detail: str | None = None):
        self.stage = stage
        self.status_code = status_code
        self.detail = detail
        if status_code is not None:
            message = f"{stage} failed: {status_code}"
        else:
            message = f"{stage} failed: {detail or 'request error'}"
        super().__init__(message)


class PersistenceError(ContentFlowError):
    """Writing a pipeline artifact (order, draft) failed."""
