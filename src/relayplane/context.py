"""Per-run execution context.

The ExecutionContext tracks the state of a single run: the caller's
input, the outputs of completed steps in execution order, and the
per-step logs used for telemetry. A new context is created for every
run() call and never shared between runs.
"""

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from relayplane.models import StepLog

# Template variables that step outputs are exposed next to
RESERVED_STEP_NAMES = frozenset({"input", "steps"})


def new_run_id() -> str:
    """Generate a unique run identifier."""
    return f"run_{uuid4().hex[:16]}"


class ExecutionContext:
    """State of one workflow run.

    Usage:
        context = ExecutionContext("invoice-processor", {"file": "a.pdf"})
        context.record_output("extract", {"vendor": "Acme"})
        context.template_context()["steps"]["extract"]
    """

    def __init__(
        self,
        workflow_name: str,
        input: Any = None,
        run_id: str | None = None,
    ) -> None:
        self.workflow_name = workflow_name
        self.input = input if input is not None else {}
        self.run_id = run_id or new_run_id()
        self.started_at = datetime.now(timezone.utc)
        self.current_step: str | None = None
        self.step_started_at: datetime | None = None

        self._outputs: dict[str, Any] = {}
        self._logs: list[StepLog] = []

    @property
    def step_outputs(self) -> dict[str, Any]:
        """Snapshot of outputs recorded so far, in execution order."""
        return dict(self._outputs)

    @property
    def step_logs(self) -> list[StepLog]:
        return list(self._logs)

    def record_output(self, step_name: str, output: Any) -> None:
        """Record a completed step's output.

        Each step writes exactly once.
        """
        if step_name in self._outputs:
            raise ValueError(f"Output for step '{step_name}' already recorded")
        self._outputs[step_name] = output

    def add_log(self, log: StepLog) -> None:
        self._logs.append(log)

    def template_context(self) -> dict[str, Any]:
        """Variables visible to template placeholders.

        Outputs are exposed both under ``steps`` and at top level so that
        ``{{ steps.extract.vendor }}`` and ``{{ extract.vendor }}`` resolve
        to the same value. Only already-completed steps are visible.
        """
        outputs = self.step_outputs
        variables: dict[str, Any] = dict(outputs)
        variables["input"] = self.input
        variables["steps"] = outputs
        return variables
