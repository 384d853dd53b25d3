"""Error taxonomy for import and package resolution.

Library code raises these; rendering them is the caller's job (see
``utils.error_format`` and the CLI commands).
"""


class ResolutionError(Exception):
    """Base class for all resolution failures.

    Args:
        message: Human-readable description
        hint: Optional suggestion for fixing the problem
    """

    def __init__(self, message: str, *, hint: str | None = None):
        super().__init__(message)
        self.message = message
        self.hint = hint

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message}\nHint: {self.hint}"
        return self.message


class ConfigError(ResolutionError):
    """Malformed manifest, sandbox violation, or missing manifest."""


class NetworkError(ResolutionError):
    """Remote unreachable, authentication failure, or transport failure.

    ``transient`` marks failures worth retrying (timeouts, resets, 5xx).
    """

    def __init__(self, message: str, *, hint: str | None = None, transient: bool = False):
        super().__init__(message, hint=hint)
        self.transient = transient


class ParseError(ResolutionError):
    """Malformed source document or lock file."""


class CycleError(ResolutionError):
    """Package-level circular dependency."""

    def __init__(self, cycles: list[list[str]], *, hint: str | None = None):
        rendered = "; ".join(" -> ".join(cycle) for cycle in cycles)
        super().__init__(f"Circular package dependency detected: {rendered}", hint=hint)
        self.cycles = cycles


class NotFoundError(ResolutionError):
    """Missing package, file, or cache entry."""
