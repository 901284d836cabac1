"""Exceptions raised while reaping untagged package versions."""

__all__ = [
    "AuthError",
    "CancelledRunError",
    "ConfigurationError",
    "PackageNotFoundError",
    "RateLimitedError",
    "ReaperError",
    "RegistryResponseError",
    "ServerError",
    "TransientError",
]


class ReaperError(Exception):
    """Base class for reaper errors.

    Parameters
    ----------
    message
        Human-readable description of the problem.
    package
        Package being processed when the error happened, if any.
    version_id
        Package version being processed when the error happened, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        package: str | None = None,
        version_id: int | str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.package = package
        self.version_id = version_id

    def __str__(self) -> str:
        where = ""
        if self.package is not None:
            where = self.package
            if self.version_id is not None:
                where += f" (version {self.version_id})"
            where += ": "
        return f"{where}{self.message}"


class ConfigurationError(ReaperError):
    """Configuration is invalid; raised before any network call."""


class AuthError(ReaperError):
    """The registry rejected the credential.  Fatal for the whole run."""


class PackageNotFoundError(ReaperError):
    """The package does not exist under the owner scope."""


class TransientError(ReaperError):
    """A call kept failing with retryable errors until attempts ran out."""


class CancelledRunError(ReaperError):
    """The run was cancelled before this call was started."""


class RegistryResponseError(ReaperError):
    """The registry returned a response we could not interpret."""


class RateLimitedError(ReaperError):
    """The registry asked us to slow down.

    Parameters
    ----------
    message
        Description of the rate limit response.
    retry_after
        Seconds the registry asked us to wait, if it said.
    """

    def __init__(
        self,
        message: str,
        *,
        retry_after: float | None = None,
        package: str | None = None,
        version_id: int | str | None = None,
    ) -> None:
        super().__init__(message, package=package, version_id=version_id)
        self.retry_after = retry_after


class ServerError(ReaperError):
    """The registry failed with a 5xx status or the transport failed."""

    def __init__(
        self,
        message: str,
        *,
        status: int | None = None,
        package: str | None = None,
        version_id: int | str | None = None,
    ) -> None:
        super().__init__(message, package=package, version_id=version_id)
        self.status = status
