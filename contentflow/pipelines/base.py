"""Pipeline interface and the job-type registry.

A pipeline turns one claimed job into a result dict, recording its progress
on the `StepRecorder` it is handed. New job types are added by registering a
builder, never by editing the executor.
"""

from __future__ import annotations

import logging
import random
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from contentflow.database.models import AgentJob
from contentflow.errors import UnknownJobTypeError
from contentflow.notifier import Notifier
from contentflow.runs.recorder import StepRecorder
from contentflow.schemas import EnrichmentContext, JobType, StepName
from contentflow.stages.clients import StageClients


logger = logging.getLogger(__name__)


@dataclass
class PipelineDeps:
    """Collaborators shared by every pipeline built for one executor."""
    session_maker: async_sessionmaker[AsyncSession]
    stages: StageClients
    notifier: Notifier | None = None
    rng: random.Random = field(default_factory=random.Random)


class Pipeline(ABC):
    """Executes one job type."""

    job_type: JobType
    # A successful run must have recorded this step
    terminal_step: StepName

    def __init__(self, deps: PipelineDeps):
        self.deps = deps

    @abstractmethod
    async def execute(self, job: AgentJob, recorder: StepRecorder) -> dict[str, Any]:
        """Run the job and return its result; raise on failure."""
        ...


def enrichment_from_payload(job: AgentJob) -> EnrichmentContext:
    """Parse the optional enrichment blobs, dropping them if malformed."""
    try:
        return EnrichmentContext.from_payload(job.payload_json or {})
    except ValidationError as e:
        logger.warning(f"[{job.id}] Ignoring malformed enrichment context: {e}")
        return EnrichmentContext()


PipelineBuilder = Callable[[PipelineDeps], Pipeline]


class PipelineRegistry:
    """Thread-safe map of job type -> pipeline builder."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._map: dict[str, PipelineBuilder] = {}

    @staticmethod
    def _key(job_type: JobType | str) -> str:
        return job_type.value if isinstance(job_type, JobType) else str(job_type).strip()

    def register(self, job_type: JobType | str, builder: PipelineBuilder) -> None:
        key = self._key(job_type)
        with self._lock:
            if key in self._map:
                raise ValueError(f"Pipeline already registered: {key}")
            self._map[key] = builder

    def set(self, job_type: JobType | str, builder: PipelineBuilder) -> None:
        """Overwrite an existing registration."""
        with self._lock:
            self._map[self._key(job_type)] = builder

    def get(self, job_type: JobType | str) -> PipelineBuilder:
        key = self._key(job_type)
        with self._lock:
            try:
                return self._map[key]
            except KeyError:
                raise UnknownJobTypeError(key) from None

    def build(self, job_type: JobType | str, deps: PipelineDeps) -> Pipeline:
        return self.get(job_type)(deps)

    def list(self) -> list[str]:
        with self._lock:
            return sorted(self._map.keys())

    def __contains__(self, job_type: object) -> bool:
        if not isinstance(job_type, (JobType, str)):
            return False
        with self._lock:
            return self._key(job_type) in self._map
