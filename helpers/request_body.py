import json
import logging
from json import JSONDecodeError
from typing import Any, Dict, Iterable, Optional

from fastapi import Request

log = logging.getLogger("request_body")


async def parse_incoming_body(req: Request) -> dict:
    """
    Safely parse JSON/form bodies. Returns {} on empty/invalid payloads.
    Voice-agent tools are not consistent about content types.
    """
    ctype = (req.headers.get("content-type") or "").lower()

    if "application/x-www-form-urlencoded" in ctype or "multipart/form-data" in ctype:
        try:
            form = await req.form()
            # some providers wrap json in a `payload` field
            if "payload" in form:
                try:
                    return json.loads(form["payload"])
                except (JSONDecodeError, TypeError) as e:
                    log.warning("Invalid JSON in form payload: %s", e)
            return dict(form)
        except Exception as e:
            log.warning("Form parse failed: %s", e)
            return {}

    try:
        raw = await req.body()
        if not raw:
            return {}
        body = json.loads(raw.decode("utf-8"))
        return body if isinstance(body, dict) else {}
    except (JSONDecodeError, UnicodeDecodeError) as e:
        log.warning("Body not JSON: %s", e)
        return {}


def tool_arguments(body: Dict[str, Any]) -> Dict[str, Any]:
    """Tool-call payloads nest arguments under args / arguments (maybe a JSON string) / input."""
    for key in ("args", "arguments", "input"):
        value = body.get(key)
        if isinstance(value, str):
            try:
                value = json.loads(value)
            except JSONDecodeError:
                continue
        if isinstance(value, dict) and value:
            return value
    return {}


def first_value(sources: Iterable[Dict[str, Any]], key: str) -> Optional[Any]:
    for src in sources:
        v = src.get(key)
        if v not in (None, ""):
            return v
    return None
