"""
Error taxonomy for the warehouse features demo.

Nothing here is caught locally by the orchestrator: every error aborts the run
and reaches the operator. `run_demo` only re-labels failures by phase so that
setup problems are told apart from pipeline problems.
"""

from __future__ import annotations

from typing import Dict, Optional, Sequence


class DemoError(Exception):
    """Base class for every error raised by this package."""


class EngineError(DemoError):
    """The database engine rejected a statement (syntax, constraint, permission, ...)."""

    def __init__(self, message: str, statement: Optional[str] = None) -> None:
        super().__init__(message)
        self.statement = statement

    def __str__(self) -> str:
        base = super().__str__()
        if self.statement:
            return f"{base} [statement: {self.statement}]"
        return base


class ConfigError(DemoError):
    """A required integration or setting is missing or disabled."""


class AwaitAllTimeoutError(DemoError, TimeoutError):
    """The await-all barrier did not resolve within its bound."""

    def __init__(
        self, timeout_seconds: float, elapsed_seconds: float, pending: Sequence[str]
    ) -> None:
        super().__init__(
            f"await-all barrier timed out after {timeout_seconds:g}s "
            f"(pending: {', '.join(pending) or '-'})"
        )
        self.timeout_seconds = timeout_seconds
        self.elapsed_seconds = elapsed_seconds
        self.pending = list(pending)


class WorkerGroupError(DemoError):
    """One or more concurrent workers failed under the collect-all policy."""

    def __init__(self, failures: Dict[str, BaseException]) -> None:
        summary = "; ".join(f"{name}: {exc}" for name, exc in failures.items())
        super().__init__(f"{len(failures)} worker(s) failed: {summary}")
        self.failures = dict(failures)


class SetupPhaseError(DemoError):
    """Setup failed; no timing measurement was taken."""


class PipelinePhaseError(DemoError):
    """A pipeline run failed; carries the elapsed time up to the failure."""

    def __init__(self, mode: str, elapsed_seconds: float, cause: BaseException) -> None:
        super().__init__(f"{mode} pipeline failed after {elapsed_seconds:.2f}s: {cause}")
        self.mode = mode
        self.elapsed_seconds = elapsed_seconds


__all__ = [
    "AwaitAllTimeoutError",
    "ConfigError",
    "DemoError",
    "EngineError",
    "PipelinePhaseError",
    "SetupPhaseError",
    "WorkerGroupError",
]
