"""Exceptions raised by flowrun to its callers.

Recoverable conditions (drifted or corrupted snapshots, unknown task ids on
toggle) are logged and degraded instead of raised.
"""

from __future__ import annotations


class FlowrunError(Exception):
    """Base class for errors surfaced to the CLI or an embedding application."""


class ProcedureLoadError(FlowrunError):
    """A procedure definition file could not be read or decoded."""


class ProcedureValidationError(FlowrunError):
    """A procedure definition failed structural validation."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(self.errors) or "invalid procedure")


class RunNotStartedError(FlowrunError):
    """Task toggles are refused until the service run has been started."""


class UnknownStepError(FlowrunError):
    """An orchestrator operation addressed a step id the procedure lacks."""

    def __init__(self, step_id: str) -> None:
        self.step_id = step_id
        super().__init__(f"Unknown step: {step_id}")
