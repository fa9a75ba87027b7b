"""
Pod executor: starts and stops one build pod on the Kubernetes API.

start(job): render the pod template, POST it to the namespace's pods
            endpoint, expect 201.
stop(job):  DELETE every pod labelled ``sdbuild=<prefix><build_id>``,
            expect 200.

Every call goes through a ResilientCaller, so transient network failures are
retried and a failing API trips the circuit breaker. Non-2xx answers are not
retried; they surface as JobCreationError / JobDeletionError carrying the
response body.

Creation is not idempotent: if a POST reached the API but its response was
lost, the retry may create a second pod unless the API rejects the duplicate
name with a conflict.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Union

from pod_launcher.caller import ResilientCaller, Transport
from pod_launcher.common import metrics
from pod_launcher.common.exceptions import (
    ConfigurationError,
    JobCreationError,
    JobDeletionError,
)
from pod_launcher.common.logging import LoggedClass
from pod_launcher.config import ExecutorConfig
from pod_launcher.credentials import load_service_account_token, load_template
from pod_launcher.stats import StatsSnapshot
from pod_launcher.template import TemplateCompiler
from pod_launcher.transport import AiohttpTransport, HttpRequest

CREATE_SUCCESS_STATUS = 201
DELETE_SUCCESS_STATUS = 200
BUILD_LABEL = "sdbuild"


@dataclass(frozen=True)
class JobDescriptor:
    """Identity of one build job plus optional per-job overrides."""

    build_id: int
    container: Optional[str] = None
    token: Optional[str] = None
    api_uri: Optional[str] = None
    store_uri: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "JobDescriptor":
        """Accept the host's camelCase keys (buildId, apiUri, storeUri)."""
        if "buildId" in data:
            build_id = data["buildId"]
        elif "build_id" in data:
            build_id = data["build_id"]
        else:
            raise ConfigurationError("Job descriptor requires 'buildId'")

        return cls(
            build_id=int(build_id),
            container=data.get("container"),
            token=data.get("token"),
            api_uri=data.get("apiUri", data.get("api_uri")),
            store_uri=data.get("storeUri", data.get("store_uri")),
        )


JobLike = Union[JobDescriptor, Mapping[str, Any]]


def _serialize_body(body: Any) -> str:
    return json.dumps(body, separators=(",", ":"), default=str)


class PodExecutor(LoggedClass):
    """
    Launches and tears down build pods.

    Usage:
        async with PodExecutor.from_options({"prefix": "beta_"}) as executor:
            await executor.start(JobDescriptor(build_id=15, container="node:4"))
            await executor.stop(JobDescriptor(build_id=15))
            print(executor.stats().to_dict())
    """

    log_component = "executor"

    def __init__(
        self,
        config: Optional[ExecutorConfig] = None,
        template: Optional[str] = None,
        token: Optional[str] = None,
        transport: Optional[Transport] = None,
    ):
        """
        Initialize the executor.

        Args:
            config: Resolved configuration (defaults when None)
            template: Pod template text (packaged template when None)
            token: Service-account bearer token (config token, else empty)
            transport: HTTP transport (AiohttpTransport when None)
        """
        self.config = config or ExecutorConfig()
        if token is None:
            token = self.config.kubernetes.token or ""
        self.token = token

        self.prefix = self.config.prefix
        self.host = self.config.kubernetes.host
        self.jobs_namespace = self.config.kubernetes.jobs_namespace
        self.base_image = self.config.kubernetes.base_image
        self.launch_version = self.config.launch_version
        self.pods_url = self.config.pods_url

        self._compiler = TemplateCompiler(
            template if template is not None else load_template(self.config.template_path)
        )
        self._caller = ResilientCaller(
            transport if transport is not None else AiohttpTransport(),
            retry_config=self.config.fusebox.retry,
            breaker_config=self.config.fusebox.breaker,
            timeout_seconds=self.config.fusebox.timeout_seconds,
        )
        super().__init__()

    @classmethod
    def from_options(
        cls,
        options: Optional[Mapping[str, Any]] = None,
        transport: Optional[Transport] = None,
    ) -> "PodExecutor":
        """Build from a host option bag, reading token and template files."""
        config = ExecutorConfig.from_dict(options)
        token = config.kubernetes.token
        if token is None:
            token = load_service_account_token(config.kubernetes.token_path)
        return cls(
            config=config,
            template=load_template(config.template_path),
            token=token,
            transport=transport,
        )

    async def __aenter__(self) -> "PodExecutor":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Release the transport's HTTP session, if it has one."""
        close = getattr(self._caller.transport, "close", None)
        if close is not None:
            await close()

    @property
    def caller(self) -> ResilientCaller:
        return self._caller

    def _auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"}

    def _pod_name(self, build_id: int) -> str:
        return f"{self.prefix}{build_id}"

    def bindings_for(self, job: JobDescriptor) -> Dict[str, str]:
        """Resolve the template binding map for a job."""
        container = job.container or self.base_image
        if not container:
            raise ConfigurationError(
                f"No container image for build {job.build_id} and no base image configured"
            )
        return {
            "build_id_with_prefix": self._pod_name(job.build_id),
            "container": container,
            "launcher_version": self.launch_version,
            "api_uri": job.api_uri or self.config.api_uri,
            "store_uri": job.store_uri or self.config.store_uri,
            "token": job.token or "",
            "build_id": str(job.build_id),
        }

    async def start(self, job: JobLike) -> Any:
        """
        Create the build pod.

        Returns:
            Response body from the cluster API

        Raises:
            TemplateBindingError: Template needs a binding the executor lacks
            JobCreationError: API answered with a status other than 201
            CircuitOpenError, TimeoutError, TransportError: from the caller
        """
        job = _as_job(job)
        body = self._compiler.compile(self.bindings_for(job))
        request = HttpRequest(
            method="POST",
            uri=self.pods_url,
            headers=self._auth_headers(),
            json=body,
            verify_ssl=False,
        )

        try:
            response = await self._caller.execute(request)
        except Exception:
            metrics.record_job("start", succeeded=False)
            raise

        if response.status != CREATE_SUCCESS_STATUS:
            metrics.record_job("start", succeeded=False)
            error = JobCreationError(
                f"Failed to create pod: {_serialize_body(response.body)}",
                status_code=response.status,
                body=response.body,
            )
            self._log_exception(
                error,
                "Pod creation rejected",
                level=logging.WARNING,
                build_id=job.build_id,
                http_status=response.status,
            )
            raise error

        metrics.record_job("start", succeeded=True)
        self._log(
            logging.INFO,
            "Pod created",
            build_id=job.build_id,
            pod_name=self._pod_name(job.build_id),
        )
        return response.body

    async def stop(self, job: JobLike) -> Any:
        """
        Delete every pod labelled with the job's build.

        The API answers 200 even when nothing matches, so stopping an already
        stopped build succeeds.

        Raises:
            JobDeletionError: API answered with a status other than 200
            CircuitOpenError, TimeoutError, TransportError: from the caller
        """
        job = _as_job(job)
        request = HttpRequest(
            method="DELETE",
            uri=self.pods_url,
            headers=self._auth_headers(),
            params={"labelSelector": f"{BUILD_LABEL}={self._pod_name(job.build_id)}"},
            verify_ssl=False,
        )

        try:
            response = await self._caller.execute(request)
        except Exception:
            metrics.record_job("stop", succeeded=False)
            raise

        if response.status != DELETE_SUCCESS_STATUS:
            metrics.record_job("stop", succeeded=False)
            error = JobDeletionError(
                f"Failed to delete pod: {_serialize_body(response.body)}",
                status_code=response.status,
                body=response.body,
            )
            self._log_exception(
                error,
                "Pod deletion rejected",
                level=logging.WARNING,
                build_id=job.build_id,
                http_status=response.status,
            )
            raise error

        metrics.record_job("stop", succeeded=True)
        self._log(logging.INFO, "Pod deleted", build_id=job.build_id)
        return response.body

    def stats(self) -> StatsSnapshot:
        return self._caller.stats()


def _as_job(job: JobLike) -> JobDescriptor:
    if isinstance(job, JobDescriptor):
        return job
    return JobDescriptor.from_dict(job)
