from fastapi import APIRouter, Request

from helpers.errors import ValidationError
from helpers.reference_lookup import lookup_employer, lookup_site
from helpers.request_body import first_value, parse_incoming_body, tool_arguments

router = APIRouter()


@router.post("/employers/lookup")
async def find_employer(req: Request):
    """In-call tool: match a spoken company name against the employer registry."""
    body = await parse_incoming_body(req)
    employer_name = first_value((tool_arguments(body), body), "employer_name")
    result = await lookup_employer(str(employer_name) if employer_name is not None else None)
    return result.model_dump()


@router.post("/sites/lookup")
async def find_site(req: Request):
    """In-call tool: match a spoken site name, scoped to the employer once it is known."""
    body = await parse_incoming_body(req)
    sources = (tool_arguments(body), body)

    employer_id = first_value(sources, "employer_id")
    try:
        employer_id = int(employer_id) if employer_id is not None else None
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid employer_id: {employer_id}")

    site_name = first_value(sources, "site_name")
    result = await lookup_site(str(site_name) if site_name is not None else None, employer_id)
    return result.model_dump()
