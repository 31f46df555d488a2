from fastapi import APIRouter, Request

from helpers.errors import ValidationError
from helpers.identity_resolver import resolve_worker
from helpers.request_body import first_value, parse_incoming_body, tool_arguments

router = APIRouter()


@router.post("/workers/lookup")
async def lookup_worker(req: Request):
    """In-call tool: match a spoken name against the worker registry."""
    body = await parse_incoming_body(req)
    sources = (tool_arguments(body), body)

    worker_name = first_value(sources, "worker_name")
    if not worker_name or not str(worker_name).strip():
        raise ValidationError("No worker name provided")

    employer_id = first_value(sources, "employer_id")
    try:
        employer_id = int(employer_id) if employer_id is not None else None
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid employer_id: {employer_id}")

    verdict = await resolve_worker(str(worker_name), employer_id)
    return verdict.model_dump(exclude_none=True)
