"""Client for the remote job-based conversion service.

One :class:`RemoteJob` is driven through
``CREATED -> UPLOAD_PENDING -> UPLOADED -> POLLING -> FINISHED | FAILED | TIMED_OUT``.
Polling is a plain bounded loop with a fixed interval; the sleep function is
injectable so the loop runs the same on a worker thread or in tests.
"""

from __future__ import annotations

import json
import logging
import mimetypes
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Mapping

import httpx

from .config import RemoteConfig
from .errors import RemoteJobError, RemoteJobFailed, RemoteJobTimeout
from .utils import TempPool, remove_quietly, split_name

logger = logging.getLogger(__name__)

IMPORT_TASK = "import-my-file"
CONVERT_TASK = "convert-my-file"
EXPORT_TASK = "export-my-file"


class RemoteJobState(str, Enum):
    CREATED = "created"
    UPLOAD_PENDING = "upload_pending"
    UPLOADED = "uploaded"
    POLLING = "polling"
    FINISHED = "finished"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


class RemoteJobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    FINISHED = "finished"
    FAILED = "failed"

    @classmethod
    def from_service(cls, value: object) -> "RemoteJobStatus":
        normalized = str(value or "").lower()
        if normalized == "finished":
            return cls.FINISHED
        if normalized in {"error", "failed"}:
            return cls.FAILED
        if normalized == "processing":
            return cls.PROCESSING
        return cls.QUEUED


@dataclass(slots=True)
class RemoteFile:
    filename: str
    url: str


@dataclass(slots=True)
class RemoteJob:
    job_id: str
    state: RemoteJobState = RemoteJobState.CREATED
    status: RemoteJobStatus = RemoteJobStatus.QUEUED
    upload_url: str | None = None
    upload_parameters: dict[str, str] = field(default_factory=dict)
    files: list[RemoteFile] = field(default_factory=list)
    polls: int = 0
    payload: Mapping[str, Any] | None = None

    def transition(self, state: RemoteJobState) -> None:
        logger.debug("Remote job %s: %s -> %s", self.job_id, self.state.value, state.value)
        self.state = state


@dataclass(frozen=True, slots=True)
class RemoteOutput:
    filename: str
    data: bytes
    content_type: str


@dataclass(frozen=True, slots=True)
class RemoteResult:
    job_id: str
    outputs: list[RemoteOutput]


def normalize_output_format(value: str | None) -> str:
    normalized = (value or "").strip().lower().lstrip(".")
    if normalized == "jpeg":
        return "jpg"
    return normalized or "jpg"


def _normalize_extension(suffix: str) -> str:
    return normalize_output_format(suffix) if suffix else ""


def build_job_payload(
    output_format: str,
    *,
    input_format: str | None = None,
    options: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    convert: dict[str, Any] = {
        "operation": "convert",
        "input": [IMPORT_TASK],
        "output_format": output_format,
    }
    if input_format:
        convert["input_format"] = input_format
    convert.update(options or {})
    return {
        "tasks": {
            IMPORT_TASK: {"operation": "import/upload"},
            CONVERT_TASK: convert,
            EXPORT_TASK: {"operation": "export/url", "input": [CONVERT_TASK]},
        }
    }


def _find_task(job_data: Mapping[str, Any], name: str) -> Mapping[str, Any] | None:
    for task in job_data.get("tasks") or []:
        if isinstance(task, Mapping) and task.get("name") == name:
            return task
    return None


def _response_data(response: httpx.Response) -> Mapping[str, Any] | None:
    body = response.json()
    data = body.get("data") if isinstance(body, Mapping) else None
    return data if isinstance(data, Mapping) else None


class RemoteConversionClient:
    def __init__(
        self,
        config: RemoteConfig,
        *,
        http_client: httpx.Client | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not config.configured:
            raise ValueError("Remote conversion requires an API key")
        self._config = config
        self._base_url = config.base_url.rstrip("/")
        self._client = http_client or httpx.Client(timeout=config.request_timeout_s)
        self._sleep = sleep
        self._headers = {"Authorization": f"Bearer {config.api_key}"}

    def close(self) -> None:
        self._client.close()

    def convert(
        self,
        data: bytes,
        filename: str,
        output_format: str,
        pool: TempPool,
        *,
        input_format: str | None = None,
        options: Mapping[str, Any] | None = None,
    ) -> RemoteResult:
        """Convert *data* remotely, keeping a temporary copy only for the job's lifetime."""

        stem, suffix = split_name(filename)
        input_path = pool.write(data, suffix or ".bin", stem=stem)
        try:
            return self.convert_path(
                input_path, output_format, pool, input_format=input_format, options=options
            )
        finally:
            input_path.unlink(missing_ok=True)

    def convert_path(
        self,
        input_path: Path,
        output_format: str,
        pool: TempPool,
        *,
        input_format: str | None = None,
        options: Mapping[str, Any] | None = None,
    ) -> RemoteResult:
        fmt = normalize_output_format(output_format)
        logger.info("Remote: creating job for %s -> %s", input_path.name, fmt)
        job = self._create_job(fmt, input_format, options)
        self._upload(job, input_path)
        self._poll(job)

        downloaded: list[tuple[RemoteFile, Path]] = []
        try:
            self._download(job, input_path, fmt, pool, downloaded)
            self._check_converted(job, input_path, fmt, downloaded)
            outputs = [
                RemoteOutput(
                    filename=descriptor.filename or path.name,
                    data=path.read_bytes(),
                    content_type=mimetypes.guess_type(path.name)[0] or "application/octet-stream",
                )
                for descriptor, path in downloaded
            ]
        finally:
            remove_quietly(path for _, path in downloaded)
        return RemoteResult(job_id=job.job_id, outputs=outputs)

    def _create_job(
        self, fmt: str, input_format: str | None, options: Mapping[str, Any] | None
    ) -> RemoteJob:
        payload = build_job_payload(fmt, input_format=input_format, options=options)
        try:
            response = self._client.post(
                f"{self._base_url}/jobs",
                json=payload,
                headers=self._headers,
                timeout=self._config.upload_timeout_s,
            )
            response.raise_for_status()
            data = _response_data(response)
        except (httpx.HTTPError, ValueError) as exc:
            raise RemoteJobError("REMOTE_CREATE_FAILED", f"Remote job creation failed: {exc}") from exc
        if data is None or not data.get("id"):
            raise RemoteJobError("REMOTE_PROTOCOL", "Remote service did not return a job")

        job = RemoteJob(job_id=str(data["id"]), payload=data)
        logger.info("Remote: job created id=%s", job.job_id)
        import_task = _find_task(data, IMPORT_TASK) or {}
        form = (import_task.get("result") or {}).get("form") or {}
        if not form.get("url"):
            job.transition(RemoteJobState.FAILED)
            raise RemoteJobError(
                "REMOTE_PROTOCOL",
                f"Remote upload details missing (jobId={job.job_id})",
                job_id=job.job_id,
                payload=data,
            )
        job.upload_url = str(form["url"])
        job.upload_parameters = {str(k): str(v) for k, v in (form.get("parameters") or {}).items()}
        job.transition(RemoteJobState.UPLOAD_PENDING)
        return job

    def _upload(self, job: RemoteJob, input_path: Path) -> None:
        if not job.upload_url:
            raise RemoteJobError(
                "REMOTE_PROTOCOL", f"No upload URL for remote job {job.job_id}", job_id=job.job_id
            )
        logger.info("Remote: uploading %s for job %s", input_path.name, job.job_id)
        try:
            with input_path.open("rb") as handle:
                response = self._client.post(
                    job.upload_url,
                    data=job.upload_parameters,
                    files={"file": (input_path.name, handle)},
                    timeout=self._config.upload_timeout_s,
                )
                response.raise_for_status()
        except httpx.HTTPError as exc:
            job.transition(RemoteJobState.FAILED)
            raise RemoteJobError(
                "REMOTE_UPLOAD_FAILED",
                f"Remote file upload failed (jobId={job.job_id}): {exc}",
                job_id=job.job_id,
            ) from exc
        job.transition(RemoteJobState.UPLOADED)

    def _poll(self, job: RemoteJob) -> None:
        job.transition(RemoteJobState.POLLING)
        url = f"{self._base_url}/jobs/{job.job_id}"
        for attempt in range(1, self._config.max_polls + 1):
            self._sleep(self._config.poll_interval_s)
            job.polls = attempt
            try:
                response = self._client.get(url, headers=self._headers)
                response.raise_for_status()
                data = _response_data(response)
            except (httpx.HTTPError, ValueError) as exc:
                logger.warning("Remote: poll %d for job %s failed: %s", attempt, job.job_id, exc)
                continue
            if data is None:
                continue
            job.payload = data
            job.status = RemoteJobStatus.from_service(data.get("status"))
            logger.info("Remote: job %s status %s (poll %d)", job.job_id, job.status.value, attempt)
            if job.status is RemoteJobStatus.FINISHED:
                job.files = self._export_files(job, data)
                job.transition(RemoteJobState.FINISHED)
                return
            if job.status is RemoteJobStatus.FAILED:
                job.transition(RemoteJobState.FAILED)
                raise RemoteJobFailed(
                    f"Remote job {job.job_id} failed: {json.dumps(data, default=str)}",
                    job_id=job.job_id,
                    payload=data,
                )
        job.transition(RemoteJobState.TIMED_OUT)
        raise RemoteJobTimeout(
            f"Remote job {job.job_id} did not finish after {job.polls} polls (status={job.status.value})",
            job_id=job.job_id,
            payload=job.payload,
        )

    def _export_files(self, job: RemoteJob, data: Mapping[str, Any]) -> list[RemoteFile]:
        task = _find_task(data, EXPORT_TASK)
        files = []
        if task and task.get("status") == "finished":
            files = (task.get("result") or {}).get("files") or []
        descriptors = [
            RemoteFile(filename=str(item.get("filename") or ""), url=str(item["url"]))
            for item in files
            if isinstance(item, Mapping) and item.get("url")
        ]
        if not descriptors:
            raise RemoteJobError(
                "REMOTE_NO_OUTPUT",
                f"Remote job {job.job_id} finished without export files",
                job_id=job.job_id,
                payload=data,
            )
        return descriptors

    def _download(
        self,
        job: RemoteJob,
        input_path: Path,
        fmt: str,
        pool: TempPool,
        downloaded: list[tuple[RemoteFile, Path]],
    ) -> None:
        stem, _ = split_name(input_path.name)
        for descriptor in job.files:
            _, suffix = split_name(descriptor.filename) if descriptor.filename else ("", "")
            target = pool.new_path(suffix or f".{fmt}", stem=f"{stem}_remote")
            downloaded.append((descriptor, target))
            logger.info("Remote: downloading %s for job %s", descriptor.filename or descriptor.url, job.job_id)
            try:
                with self._client.stream(
                    "GET", descriptor.url, timeout=self._config.upload_timeout_s
                ) as response:
                    response.raise_for_status()
                    with target.open("wb") as handle:
                        for chunk in response.iter_bytes():
                            handle.write(chunk)
            except httpx.HTTPError as exc:
                raise RemoteJobError(
                    "REMOTE_DOWNLOAD_FAILED",
                    f"Remote download failed (jobId={job.job_id}): {exc}",
                    job_id=job.job_id,
                ) from exc

    def _check_converted(
        self,
        job: RemoteJob,
        input_path: Path,
        fmt: str,
        downloaded: list[tuple[RemoteFile, Path]],
    ) -> None:
        input_ext = _normalize_extension(input_path.suffix)
        if not input_ext or input_ext == fmt:
            return
        if all(_normalize_extension(path.suffix) == input_ext for _, path in downloaded):
            logger.error(
                "Remote: job %s returned only %s files, conversion did not happen", job.job_id, input_ext
            )
            raise RemoteJobError(
                "REMOTE_UNCONVERTED",
                f"Remote service returned files with the input extension (jobId={job.job_id})",
                job_id=job.job_id,
                payload=job.payload,
            )


def create_remote_client(config: RemoteConfig, **kwargs: Any) -> RemoteConversionClient | None:
    """Build the client, or ``None`` when no credential is configured."""

    if not config.configured:
        logger.warning("Remote conversion disabled: no API key configured")
        return None
    return RemoteConversionClient(config, **kwargs)


__all__ = [
    "RemoteConversionClient",
    "RemoteFile",
    "RemoteJob",
    "RemoteJobState",
    "RemoteJobStatus",
    "RemoteOutput",
    "RemoteResult",
    "build_job_payload",
    "create_remote_client",
    "normalize_output_format",
]
