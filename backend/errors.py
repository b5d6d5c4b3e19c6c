"""
Exception taxonomy shared by the job core and the HTTP layer.
"""


class DownloaderError(Exception):
    """Base exception for all application-specific errors."""


class InputError(DownloaderError):
    """Raised when a request is missing a required field (e.g. the URL)."""


class CredentialConversionError(DownloaderError):
    """Raised when the supplied cookies cannot be turned into a cookie file."""


class LaunchError(DownloaderError):
    """Raised when the external download tool cannot be started."""


class ProcessError(DownloaderError):
    """Raised when the external download tool exits with a non-zero status."""

    def __init__(self, returncode: int, diagnostic: str = "") -> None:
        self.returncode = returncode
        self.diagnostic = diagnostic
        message = f"exit status {returncode}"
        if diagnostic:
            message = f"{message} – {diagnostic}"
        super().__init__(message)


class ProbeError(DownloaderError):
    """Raised when media metadata cannot be fetched or decoded."""


class JobNotFoundError(DownloaderError):
    """Requested job ID does not exist."""

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        super().__init__("job not found")


class ArtifactNotFoundError(DownloaderError):
    """The job exists but has no finished file on disk."""

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id
        super().__init__("file not available")
