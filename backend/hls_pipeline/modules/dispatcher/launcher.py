"""Task launchers: start one transcoding job per JobSpec.

Two backends: an ECS task whose container receives the JobSpec as its
environment, or a Celery task carrying the same environment.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

from hls_pipeline.core.aws import AWSConfig, create_client
from hls_pipeline.core.celery_app import TRANSCODE_TASK_NAME, celery_app
from hls_pipeline.modules.transcoding.schemas import JobSpec

logger = logging.getLogger(__name__)


class TaskLaunchError(Exception):
    """Raised when a job could not be started. The message is retried."""
    pass


class TaskLauncher(ABC):
    """Starts transcoding jobs."""

    @abstractmethod
    async def launch(self, spec: JobSpec) -> str:
        """Start a job.

        Returns:
            Reference of the started task

        Raises:
            TaskLaunchError: If the job was not started
        """


@dataclass(frozen=True)
class EcsLaunchConfig:
    """Where and how to run the job container."""
    cluster: str
    task_definition: str
    container_name: str
    launch_type: str = "FARGATE"
    subnets: tuple[str, ...] = field(default_factory=tuple)
    security_groups: tuple[str, ...] = field(default_factory=tuple)
    assign_public_ip: bool = True

    @classmethod
    def from_settings(cls, settings) -> "EcsLaunchConfig":
        return cls(
            cluster=settings.ECS_CLUSTER,
            task_definition=settings.ECS_TASK_DEFINITION,
            container_name=settings.ECS_CONTAINER_NAME,
            launch_type=settings.ECS_LAUNCH_TYPE,
            subnets=tuple(settings.ECS_SUBNETS),
            security_groups=tuple(settings.ECS_SECURITY_GROUPS),
            assign_public_ip=settings.ECS_ASSIGN_PUBLIC_IP,
        )


class EcsTaskLauncher(TaskLauncher):
    """Runs the job as an ECS task."""

    def __init__(self, config: EcsLaunchConfig, aws_config: AWSConfig, client: Any = None):
        self.config = config
        self.aws_config = aws_config
        self._client = client

    def _get_client(self):
        """Get or create ECS client."""
        if self._client is None:
            self._client = create_client("ecs", self.aws_config)
        return self._client

    def build_run_task_request(self, spec: JobSpec) -> dict:
        """Build the RunTask request for a JobSpec."""
        request = {
            "cluster": self.config.cluster,
            "taskDefinition": self.config.task_definition,
            "launchType": self.config.launch_type,
            "count": 1,
            "overrides": {
                "containerOverrides": [{
                    "name": self.config.container_name,
                    "environment": [
                        {"name": name, "value": value}
                        for name, value in spec.to_environment().items()
                    ],
                }],
            },
        }
        if self.config.subnets:
            request["networkConfiguration"] = {
                "awsvpcConfiguration": {
                    "subnets": list(self.config.subnets),
                    "securityGroups": list(self.config.security_groups),
                    "assignPublicIp": "ENABLED" if self.config.assign_public_ip else "DISABLED",
                }
            }
        return request

    async def launch(self, spec: JobSpec) -> str:
        request = self.build_run_task_request(spec)
        try:
            response = await asyncio.to_thread(self._get_client().run_task, **request)
        except Exception as e:
            raise TaskLaunchError(f"RunTask failed for {spec.video_id}: {e}") from e

        failures = response.get("failures") or []
        tasks = response.get("tasks") or []
        if failures or not tasks:
            reasons = ", ".join(
                f"{failure.get('arn', '?')}: {failure.get('reason', 'unknown')}"
                for failure in failures
            ) or "no task started"
            raise TaskLaunchError(f"RunTask rejected for {spec.video_id}: {reasons}")

        task_arn = tasks[0]["taskArn"]
        logger.info(f"Started ECS task {task_arn} for {spec.video_id}")
        return task_arn


class CeleryTaskLauncher(TaskLauncher):
    """Sends the job to a Celery worker."""

    def __init__(
        self,
        app,
        task_name: str = TRANSCODE_TASK_NAME,
        queue: Optional[str] = None,
    ):
        self.app = app
        self.task_name = task_name
        self.queue = queue

    async def launch(self, spec: JobSpec) -> str:
        try:
            result = await asyncio.to_thread(
                self.app.send_task,
                self.task_name,
                args=[spec.to_environment()],
                queue=self.queue,
            )
        except Exception as e:
            raise TaskLaunchError(f"Celery send_task failed for {spec.video_id}: {e}") from e
        logger.info(f"Queued Celery task {result.id} for {spec.video_id}")
        return result.id


def get_task_launcher(settings) -> TaskLauncher:
    """Build the launcher selected by ``LAUNCHER_BACKEND``."""
    backend = settings.LAUNCHER_BACKEND.lower()
    if backend == "ecs":
        return EcsTaskLauncher(
            EcsLaunchConfig.from_settings(settings),
            AWSConfig.from_settings(settings),
        )
    if backend == "celery":
        return CeleryTaskLauncher(celery_app)
    raise ValueError(f"Unknown launcher backend: {settings.LAUNCHER_BACKEND}")
