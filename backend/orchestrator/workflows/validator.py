# /orchestrator/workflows/validator.py

"""
Pure validation functions for autonomous workflow steps.

A step may name a validation predicate; the predicate is evaluated against
the step's result and a failed predicate turns the step into a failure even
when the underlying call reported success.

All functions are:
- Pure (no side effects)
- Deterministic (same input = same output)
- No database access
- No AI calls
- No logging
"""

from typing import Any, Callable, Dict, List, Optional, Sequence, TypedDict

from orchestrator.models.instruction import WorkflowStep
from orchestrator.models.workflow import WorkflowStepResult


class ValidationResult(TypedDict):
    """Result of a validation check."""
    is_valid: bool
    error_code: Optional[str]
    message: Optional[str]


def _valid() -> ValidationResult:
    return {"is_valid": True, "error_code": None, "message": None}


def _invalid(error_code: str, message: str) -> ValidationResult:
    return {"is_valid": False, "error_code": error_code, "message": message}


def _data(result: WorkflowStepResult) -> Dict[str, Any]:
    return result.data if isinstance(result.data, dict) else {}


def has_date_and_service(result: WorkflowStepResult) -> ValidationResult:
    data = _data(result)
    missing = [field for field in ("date", "service") if not data.get(field)]
    if missing:
        return _invalid("MISSING_FIELDS", f"Extracted data is missing: {', '.join(missing)}")
    return _valid()


def reservation_created(result: WorkflowStepResult) -> ValidationResult:
    data = _data(result)
    if not result.success:
        return _invalid("STEP_FAILED", "Reservation step did not succeed")
    if not (data.get("reservationId") or data.get("reservation_id") or data.get("id")):
        return _invalid("NO_RESERVATION_ID", "Reservation step returned no reservation id")
    return _valid()


def has_request_type(result: WorkflowStepResult) -> ValidationResult:
    data = _data(result)
    if not (data.get("request_type") or data.get("requestType")):
        return _invalid("NO_REQUEST_TYPE", "Request type could not be identified")
    return _valid()


def step_succeeded(result: WorkflowStepResult) -> ValidationResult:
    if not result.success:
        return _invalid("STEP_FAILED", f"Step {result.step} ({result.action}) did not succeed")
    return _valid()


VALIDATORS: Dict[str, Callable[[WorkflowStepResult], ValidationResult]] = {
    "has_date_and_service": has_date_and_service,
    "reservation_created": reservation_created,
    "has_request_type": has_request_type,
    "request_processed": step_succeeded,
}


def validate_step_result(result: WorkflowStepResult, validation: Optional[str]) -> ValidationResult:
    """
    Evaluates the named predicate against a step result. Steps without a
    predicate, and predicates with no dedicated function, require step success.
    """
    if not validation:
        return step_succeeded(result)
    return VALIDATORS.get(validation, step_succeeded)(result)


def _normalize(value: str) -> str:
    return value.replace("_", "").lower()


def matches_criterion(result: WorkflowStepResult, criterion: str, validation: Optional[str] = None) -> bool:
    """
    A successful result satisfies a criterion when its action contains the
    criterion (underscores ignored) or when its step was validated by a
    predicate of the same name.
    """
    if not result.success:
        return False
    if validation and validation == criterion:
        return True
    return _normalize(criterion) in _normalize(result.action)


def evaluate_success_criteria(
    results: Sequence[WorkflowStepResult],
    criteria: List[str],
    steps: Optional[Sequence[WorkflowStep]] = None
) -> bool:
    """
    Every criterion must be satisfied by at least one successful result.
    With no criteria the workflow succeeds only if no attempted step failed.
    """
    if not criteria:
        return all(result.success for result in results)

    validations = {step.step: step.validation for step in (steps or [])}
    return all(
        any(matches_criterion(result, criterion, validations.get(result.step)) for result in results)
        for criterion in criteria
    )
