# /orchestrator/workflows/engine.py

"""
Autonomous workflow execution engine.

Runs the ordered steps of a RagInstruction against the resource API, the
completion service and the outbound channels:

- Steps run strictly in declared order; each attempted step yields exactly
  one WorkflowStepResult, whether it succeeded, failed validation or raised.
- A step that declares a validation predicate fails when the predicate
  rejects its result, even if the underlying call succeeded.
- A failed step with error_handling == "stop" ends the run; with "continue"
  the next step runs anyway.
- Data returned by successful steps is folded into the workflow context so
  later templates can reference slots extracted earlier ({date}, {service}).
- After the loop the instruction's success criteria decide the outcome.

The engine never raises; collaborator failures become failed step results.
"""

import json
import logging
from typing import Any, Dict, List, Tuple

from orchestrator.config import strings
from orchestrator.config.prompts import EXTRACTION_PROMPT, WORKFLOW_SUCCESS_PROMPT
from orchestrator.models.instruction import RagInstruction, WorkflowStep
from orchestrator.models.workflow import AutonomousActionResult, WorkflowContext, WorkflowStepResult
from orchestrator.services.ai_service import ai_service, CompletionError
from orchestrator.services.channel_service import channel_service, SUPPORTED_PLATFORMS
from orchestrator.services.resource_service import resource_service
from orchestrator.utils.metrics import workflow_steps_counter
from orchestrator.utils.parsing import parse_or_default
from orchestrator.workflows.definitions import HTTP_METHOD_OPERATIONS, DEFAULT_OPERATION, RESERVATION_RESOURCE
from orchestrator.workflows.templates import render_data_template, render_notification, business_display_name
from orchestrator.workflows.validator import validate_step_result, evaluate_success_criteria

logger = logging.getLogger(__name__)

SCALAR_TYPES = (str, int, float, bool)


def _as_payload(rendered: Any) -> Dict[str, Any]:
    """Data templates may be stored as JSON strings; resource calls always get a dict."""
    if isinstance(rendered, dict):
        return rendered
    if isinstance(rendered, str):
        return parse_or_default(rendered, {"value": rendered})
    return {}


def resource_type_of(endpoint: str) -> str:
    return endpoint.rstrip("/").split("/")[-1]


# ==================== Step Handlers ====================

async def _run_api_call(step: WorkflowStep, context: WorkflowContext) -> Tuple[bool, Any]:
    api_call = step.api_call
    operation = HTTP_METHOD_OPERATIONS.get(api_call.method.upper(), DEFAULT_OPERATION)
    resource_type = resource_type_of(api_call.endpoint)
    payload = _as_payload(render_data_template(api_call.data_template or {}, context))

    result = await resource_service.execute_operation(
        operation, resource_type, context.business_id, context.location_id, payload
    )
    data = result if isinstance(result, dict) else {"result": result}
    return True, {"operation": operation, "resource_type": resource_type, **data}


async def _identify_request(step: WorkflowStep, context: WorkflowContext) -> Tuple[bool, Any]:
    intent = context.intent
    return True, {
        "request_type": intent.action if intent else None,
        "category": intent.category if intent else None,
    }


async def _extract_reservation_details(step: WorkflowStep, context: WorkflowContext) -> Tuple[bool, Any]:
    prompt = EXTRACTION_PROMPT.format(data_type="reservation", message=context.message)
    extracted = await ai_service.get_json_or_default(prompt, {})
    return True, extracted


async def _create_reservation(step: WorkflowStep, context: WorkflowContext) -> Tuple[bool, Any]:
    payload = _as_payload(render_data_template(step.data_template or {}, context))
    result = await resource_service.execute_operation(
        "create", RESERVATION_RESOURCE, context.business_id, context.location_id, payload
    )
    data = dict(result) if isinstance(result, dict) else {"result": result}
    if data.get("id") and not data.get("reservationId"):
        data["reservationId"] = data["id"]
    return True, data


async def _send_confirmation(step: WorkflowStep, context: WorkflowContext) -> Tuple[bool, Any]:
    if context.source not in SUPPORTED_PLATFORMS:
        return False, {"success": False, "error": f"Unsupported channel: {context.source}"}

    business_name = business_display_name(context.business_info, context.business_id)
    message = strings.CONFIRMATION_MESSAGE.format(business_name=business_name)
    result = await channel_service.send_message(context.source, context.user_id, message, context.business_id)
    return bool(result.get("success")), result


STEP_HANDLERS = {
    "identify_request": _identify_request,
    "extract_reservation_details": _extract_reservation_details,
    "create_reservation": _create_reservation,
    "send_confirmation": _send_confirmation,
}


async def _dispatch(step: WorkflowStep, context: WorkflowContext) -> Tuple[bool, Any]:
    if step.api_call:
        return await _run_api_call(step, context)
    handler = STEP_HANDLERS.get(step.action)
    if handler:
        return await handler(step, context)
    return True, {"message": f"Executed {step.action}"}


async def execute_step(step: WorkflowStep, context: WorkflowContext) -> WorkflowStepResult:
    """Runs one step and applies its validation predicate. Never raises."""
    try:
        success, data = await _dispatch(step, context)
    except Exception as e:
        logger.error(f"Error in workflow step {step.step} ({step.action}): {e}")
        return WorkflowStepResult(step=step.step, action=step.action, success=False, data={"error": str(e)})

    result = WorkflowStepResult(step=step.step, action=step.action, success=success, data=data)
    if not step.validation:
        return result

    validation = validate_step_result(result, step.validation)
    if validation["is_valid"]:
        return result

    logger.warning(f"Validation '{step.validation}' failed for step {step.step}: {validation['message']}")
    return WorkflowStepResult(
        step=step.step,
        action=step.action,
        success=False,
        data={
            "error": f"Validation failed for step {step.step}",
            "error_code": validation["error_code"],
            "details": validation["message"],
            "result": data,
        },
    )


def _fold_step_data(context: WorkflowContext, result: WorkflowStepResult) -> WorkflowContext:
    if not result.success or not isinstance(result.data, dict):
        return context
    slots = {k: v for k, v in result.data.items() if isinstance(v, SCALAR_TYPES)}
    if not slots:
        return context
    return context.model_copy(update={"extracted": {**context.extracted, **slots}})


async def _success_response(instruction: RagInstruction, results: List[WorkflowStepResult], context: WorkflowContext) -> str:
    prompt = WORKFLOW_SUCCESS_PROMPT.format(
        instruction=instruction.instruction,
        results=json.dumps([r.model_dump() for r in results], default=str),
        business_name=business_display_name(context.business_info, context.business_id),
    )
    try:
        return await ai_service.complete(prompt)
    except CompletionError:
        return strings.WORKFLOW_SUCCESS


async def execute_workflow(instruction: RagInstruction, context: WorkflowContext) -> AutonomousActionResult:
    results: List[WorkflowStepResult] = []

    for step in instruction.workflow:
        result = await execute_step(step, context)
        results.append(result)
        workflow_steps_counter.labels(action=step.action, status="success" if result.success else "failed").inc()

        if not result.success and step.error_handling == "stop":
            logger.info(f"Workflow {instruction.instruction_id} stopped at step {step.step}")
            break
        context = _fold_step_data(context, result)

    success = evaluate_success_criteria(results, instruction.success_criteria, instruction.workflow)
    notification = render_notification(
        instruction.notification_template or strings.DEFAULT_NOTIFICATION,
        context,
        action=results[0].action if results else "action",
    )
    response = await _success_response(instruction, results, context) if success else strings.WORKFLOW_FAILURE

    logger.info(
        f"Workflow {instruction.instruction_id} finished: success={success}, "
        f"{len(results)}/{len(instruction.workflow)} step(s) attempted"
    )
    return AutonomousActionResult(
        success=success,
        workflow_results=results,
        notification=notification,
        should_respond=success,
        response=response,
    )
