from __future__ import annotations


class ConversionError(RuntimeError):
    def __init__(self, code: str, message: str) -> None:
        super().__init__(message)
        self.code = code


class RemoteJobError(ConversionError):
    """Fatal error raised while driving a remote conversion job."""

    def __init__(
        self,
        code: str,
        message: str,
        *,
        job_id: str | None = None,
        payload: object | None = None,
    ) -> None:
        super().__init__(code, message)
        self.job_id = job_id
        self.payload = payload


class RemoteJobFailed(RemoteJobError):
    """The service reported a terminal failure for the job."""

    def __init__(self, message: str, *, job_id: str | None = None, payload: object | None = None) -> None:
        super().__init__("REMOTE_JOB_FAILED", message, job_id=job_id, payload=payload)


class RemoteJobTimeout(RemoteJobError):
    """Polling budget exhausted without a terminal status."""

    def __init__(self, message: str, *, job_id: str | None = None, payload: object | None = None) -> None:
        super().__init__("REMOTE_TIMEOUT", message, job_id=job_id, payload=payload)


__all__ = ["ConversionError", "RemoteJobError", "RemoteJobFailed", "RemoteJobTimeout"]
