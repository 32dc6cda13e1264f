"""Result assembly.

Turns the state of a finished run into the WorkflowResult returned to
the caller, and into the normalized record offered to telemetry.
"""

from collections.abc import Sequence
from datetime import datetime, timezone

from relayplane.context import ExecutionContext
from relayplane.exceptions import ErrorType, RelayError, StepExecutionError
from relayplane.models import (
    ResultMetadata,
    StepDefinition,
    StepStatus,
    WorkflowErrorInfo,
    WorkflowResult,
)
from relayplane.protocols.telemetry import TelemetryRun, TelemetryStepLog, TokenUsage

DEFAULT_ERROR_MESSAGE = "Workflow execution failed"


def classify_error(error: BaseException) -> str:
    """Error category reported for a failure.

    Collaborator failures keep the category they reported; SDK errors
    carry their own; anything else is UnknownError.
    """
    if isinstance(error, StepExecutionError):
        return error.reported_type
    if isinstance(error, RelayError):
        return error.error_type.value
    return ErrorType.UNKNOWN.value


def _error_details(error: BaseException) -> object:
    if isinstance(error, StepExecutionError):
        return error.details
    if isinstance(error, RelayError):
        return error.context() or None
    return None


class ResultAssembler:
    """Builds WorkflowResult values from an execution context."""

    def __init__(self, run_metadata: dict | None = None) -> None:
        self.run_metadata = dict(run_metadata or {})

    def _metadata(self, context: ExecutionContext, started_at: datetime) -> ResultMetadata:
        end_time = datetime.now(timezone.utc)
        return ResultMetadata(
            workflow_name=context.workflow_name,
            run_id=context.run_id,
            start_time=started_at,
            end_time=end_time,
            duration_ms=(end_time - started_at).total_seconds() * 1000,
            run_metadata=self.run_metadata,
        )

    def success(
        self,
        context: ExecutionContext,
        ordered: Sequence[StepDefinition],
        started_at: datetime,
    ) -> WorkflowResult:
        """Result of a run in which every step succeeded.

        The final output is the output of the last step in execution order.
        """
        outputs = context.step_outputs
        final_output = outputs[ordered[-1].name] if ordered else None
        return WorkflowResult(
            success=True,
            steps=outputs,
            final_output=final_output,
            metadata=self._metadata(context, started_at),
        )

    def failure(
        self,
        context: ExecutionContext,
        step_name: str | None,
        error: BaseException,
        started_at: datetime,
    ) -> WorkflowResult:
        """Result of a failed run.

        Steps holds only the outputs of steps that completed before the
        failure. step_name is None for failures outside step execution.
        """
        message = getattr(error, "message", None) or str(error) or DEFAULT_ERROR_MESSAGE
        return WorkflowResult(
            success=False,
            steps=context.step_outputs,
            final_output=None,
            error=WorkflowErrorInfo(
                message=message,
                type=classify_error(error),
                step_name=step_name,
                details=_error_details(error),
            ),
            metadata=self._metadata(context, started_at),
        )


def _iso(value: datetime | None) -> str:
    return (value or datetime.now(timezone.utc)).isoformat()


def build_run_record(result: WorkflowResult, context: ExecutionContext) -> TelemetryRun:
    """Normalized telemetry record for a finished run."""
    steps = []
    for log in context.step_logs:
        usage = None
        if log.tokens_in is not None and log.tokens_out is not None:
            usage = TokenUsage(
                prompt=log.tokens_in,
                completion=log.tokens_out,
                total=log.tokens_in + log.tokens_out,
            )
        steps.append(
            TelemetryStepLog(
                step_name=log.step_name,
                status="success" if log.status == StepStatus.SUCCESS else "failed",
                started_at=_iso(log.started_at),
                completed_at=_iso(log.completed_at),
                output=log.output,
                error_type=log.error_type,
                error_message=log.error_message,
                model=log.model,
                token_usage=usage,
            )
        )

    return TelemetryRun(
        run_id=result.metadata.run_id,
        workflow_name=result.metadata.workflow_name,
        status="success" if result.success else "failed",
        started_at=_iso(result.metadata.start_time),
        completed_at=_iso(result.metadata.end_time),
        error_type=result.error.type if result.error else None,
        error_message=result.error.message if result.error else None,
        steps=steps,
    )
