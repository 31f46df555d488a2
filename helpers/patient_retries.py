import logging
from datetime import datetime
from typing import Any, Dict, Optional

from helpers import config
from helpers.booking_state import BookingEvent, exhausted_reason
from helpers.booking_workflow import advance, load_context
from helpers.calling_hours import local_now, within_calling_hours
from helpers.errors import ValidationError, WorkflowConflictError
from models.booking_workflow import BookingStatus, BookingWorkflow

logger = logging.getLogger("patient_retries")


async def run_patient_retries(now: Optional[datetime] = None) -> Dict[str, Any]:
    """
    One pass over workflows waiting on the injured worker.
    Safe to run concurrently: a workflow another pass already claimed fails the
    CAS here and is reported as skipped.
    """
    if not within_calling_hours(now):
        local = local_now(now)
        msg = f"Outside calling hours ({local:%H:%M} {config.CALLING_TIMEZONE}); no calls placed"
        logger.info(msg)
        return {"success": True, "message": msg, "processed": 0, "calls_initiated": 0, "results": []}

    workflows = await BookingWorkflow.filter(
        status=BookingStatus.AWAITING_PATIENT_RETRY,
        current_call_id__isnull=True,
    ).order_by("updated_at")

    results = []
    initiated = 0
    for wf in workflows:
        try:
            ctx = await load_context(wf)
            if wf.patient_call_attempts >= config.MAX_PATIENT_ATTEMPTS:
                await advance(wf, BookingEvent.RETRY_DUE, expected_call_id=None, ctx=ctx)
                results.append({
                    "workflow_id": wf.id,
                    "status": BookingStatus.FAILED.value,
                    "reason": exhausted_reason(wf.patient_call_attempts),
                })
                continue

            dispatched = await advance(
                wf,
                BookingEvent.RETRY_DUE,
                expected_call_id=None,
                created_by="ai_booking_agent_retry",
                ctx=ctx,
            )
            initiated += 1
            results.append({
                "workflow_id": wf.id,
                "status": "call_initiated",
                "call_id": dispatched.call_id,
                "patient_name": ctx.worker_name,
                "attempt": wf.patient_call_attempts + 1,
            })
        except ValidationError as e:
            # no usable phone; advance() already failed the workflow
            results.append({"workflow_id": wf.id, "status": BookingStatus.FAILED.value, "reason": e.message})
        except WorkflowConflictError as e:
            results.append({"workflow_id": wf.id, "status": "skipped", "reason": e.message})
        except Exception as e:
            logger.exception("patient retry for workflow %s failed", wf.id)
            results.append({"workflow_id": wf.id, "status": "error", "error": str(e)})

    logger.info("patient retry pass: %s workflow(s), %s call(s) placed", len(workflows), initiated)
    return {
        "success": True,
        "message": f"Processed {len(workflows)} workflow(s), initiated {initiated} call(s)",
        "processed": len(workflows),
        "calls_initiated": initiated,
        "results": results,
    }
