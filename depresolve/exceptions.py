"""
Exceptions raised by depresolve.

Everything derives from :class:`DepResolveError`, whose ``details`` mapping
carries the package, URL or path involved so the CLI can print it and the
logs can record it. Version and requirement errors stay local to the text
that failed to parse; fetch errors are attributed to one package; conflict
errors carry the structured :class:`~depresolve.models.conflict.Conflict`.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Mapping, MutableMapping, Optional

if TYPE_CHECKING:
    from depresolve.models.conflict import Conflict


class DepResolveError(Exception):
    """Root of the depresolve exception tree.

    Args:
        message: Human-readable error message.
        details: Context rendered after the message as ``key=value`` pairs.
    """

    __slots__ = ("message", "details")

    def __init__(
        self,
        message: str,
        details: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.message: str = message
        # Internally normalize to a mutable dict
        self.details: MutableMapping[str, Any] = dict(details) if details else {}
        super().__init__(message)

    def __str__(self) -> str:
        if not self.details:
            return self.message
        formatted = ", ".join(f"{k}={v}" for k, v in self.details.items())
        return f"{self.message} ({formatted})"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, details={dict(self.details)!r})"
        )


def _add_if(details: MutableMapping[str, Any], key: str, value: Any) -> None:
    """Add a key to ``details`` only if ``value`` is not ``None``."""
    if value is not None:
        details[key] = value


def _truncate(text: str, max_length: int = 200) -> str:
    """Truncate long text for safe logging or error reporting."""
    if len(text) <= max_length:
        return text
    return text[:max_length] + "..."


class InvalidVersion(DepResolveError):
    """Raised when a version string is structurally empty.

    Args:
        message: Error description.
        text: The offending input.
    """

    __slots__ = ("text",)

    def __init__(self, message: str, *, text: Optional[str] = None) -> None:
        details: MutableMapping[str, Any] = {}
        _add_if(details, "text", repr(text) if text is not None else None)
        super().__init__(message, details)
        self.text = text


class InvalidRequirement(DepResolveError):
    """Raised when a requirement string cannot be parsed.

    Args:
        message: Error description.
        requirement: Raw requirement text.
    """

    __slots__ = ("requirement",)

    def __init__(self, message: str, *, requirement: Optional[str] = None) -> None:
        details: MutableMapping[str, Any] = {}
        _add_if(details, "requirement", requirement)
        super().__init__(message, details)
        self.requirement = requirement


class NetworkError(DepResolveError):
    """Raised when HTTP or network operations fail.

    Args:
        message: Error description.
        url: URL being accessed.
        status_code: HTTP status code, if available.
        response_body: Raw response body, truncated for safety.
        transient: Whether retrying the request may succeed.
    """

    __slots__ = ("url", "status_code", "response_body", "transient")

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
        transient: bool = False,
    ) -> None:
        details: MutableMapping[str, Any] = {}
        _add_if(details, "url", url)
        _add_if(details, "status_code", status_code)

        if response_body is not None:
            details["response"] = _truncate(response_body)

        super().__init__(message, details)

        self.url = url
        self.status_code = status_code
        self.response_body = response_body
        self.transient = transient


class FetchError(NetworkError):
    """Raised when metadata for one package could not be obtained.

    The error is attributed to a single package; other fetches running at
    the same time are unaffected.

    Args:
        message: Error description.
        package_name: Name of the package involved.
        attempts: Number of attempts made before giving up.
        not_found: Whether the index reported the package as missing.
        **kwargs: Additional arguments forwarded to ``NetworkError``.
    """

    __slots__ = ("package_name", "attempts", "not_found")

    def __init__(
        self,
        message: str,
        *,
        package_name: Optional[str] = None,
        attempts: Optional[int] = None,
        not_found: bool = False,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)

        self.package_name = package_name
        self.attempts = attempts
        self.not_found = not_found
        if package_name is not None:
            self.details["package"] = package_name
        if attempts is not None:
            self.details["attempts"] = attempts


class ResolutionConflict(DepResolveError):
    """Raised when no version of a package satisfies all its requirements.

    Args:
        conflict: Structured description of the incompatibility.
    """

    __slots__ = ("conflict",)

    def __init__(self, conflict: "Conflict", message: Optional[str] = None) -> None:
        super().__init__(
            message or f"Cannot resolve {conflict.package}",
            {"package": conflict.package},
        )
        self.conflict = conflict


class CycleEscalation(ResolutionConflict):
    """Raised when a dependency cycle forced an unsatisfiable tightening."""

    __slots__ = ()

    def __init__(self, conflict: "Conflict") -> None:
        super().__init__(
            conflict,
            f"Dependency cycle through {conflict.package} cannot be satisfied",
        )


class ResolutionCancelled(DepResolveError):
    """Raised when a resolution run is cancelled from outside."""

    __slots__ = ()


class CacheIOError(DepResolveError):
    """Raised internally when the on-disk cache cannot be read or written.

    Never escapes the cache: callers observe a miss instead.

    Args:
        message: Error description.
        path: Cache file involved.
        original_error: Underlying exception.
    """

    __slots__ = ("path", "original_error")

    def __init__(
        self,
        message: str,
        *,
        path: Optional[str] = None,
        original_error: Optional[BaseException] = None,
    ) -> None:
        details: MutableMapping[str, Any] = {}
        _add_if(details, "path", path)
        _add_if(
            details,
            "original_error",
            str(original_error) if original_error else None,
        )
        super().__init__(message, details)
        self.path = path
        self.original_error = original_error


class FileOperationError(DepResolveError):
    """Raised when file system operations fail.

    Args:
        message: Error description.
        file_path: Path to the file involved.
        operation: Operation being performed (read/write/delete).
        original_error: Original exception that triggered this error.
    """

    __slots__ = ("file_path", "operation", "original_error")

    def __init__(
        self,
        message: str,
        *,
        file_path: Optional[str] = None,
        operation: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        details: MutableMapping[str, Any] = {}
        _add_if(details, "path", file_path)
        _add_if(details, "operation", operation)
        _add_if(
            details,
            "original_error",
            str(original_error) if original_error else None,
        )

        super().__init__(message, details)

        self.file_path = file_path
        self.operation = operation
        self.original_error = original_error


class ConfigError(DepResolveError):
    """Raised when a configuration file is invalid.

    Args:
        message: Error description.
        config_path: Path of the configuration file.
        option: Offending option name, if any.
    """

    __slots__ = ("config_path", "option")

    def __init__(
        self,
        message: str,
        *,
        config_path: Optional[str] = None,
        option: Optional[str] = None,
    ) -> None:
        details: MutableMapping[str, Any] = {}
        _add_if(details, "path", config_path)
        _add_if(details, "option", option)
        super().__init__(message, details)
        self.config_path = config_path
        self.option = option
