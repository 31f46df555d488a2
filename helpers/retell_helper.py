# helpers/retell_helper.py
import logging
from typing import Any, Dict, Optional

import httpx

from helpers import config
from helpers.errors import UpstreamProviderError
from models.voice_task import VoiceTaskType

log = logging.getLogger("retell")


def _mask(val: Optional[str], keep: int = 4) -> str:
    if not val:
        return "unset"
    return f"{val[:keep]}…{val[-keep:] if len(val) > keep else ''}"


log.debug("RETELL_API_KEY: %s", _mask(config.RETELL_API_KEY))


# ------------------ AUTH HEADERS ------------------
def get_headers() -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {config.RETELL_API_KEY}",
        "Content-Type": "application/json",
    }


# ------------------ Agents ------------------
def agent_for(task_type: VoiceTaskType) -> str:
    if task_type.is_booking:
        agent = config.RETELL_BOOKING_AGENT_ID
    elif task_type in (VoiceTaskType.CHECK_IN, VoiceTaskType.FOLLOW_UP):
        agent = config.RETELL_CHECKIN_AGENT_ID
    elif task_type == VoiceTaskType.REMINDER:
        agent = config.RETELL_REMINDER_AGENT_ID
    else:
        agent = config.RETELL_SURVEY_AGENT_ID
    if not agent:
        raise UpstreamProviderError(f"No Retell agent configured for task type: {task_type.value}")
    return agent


def _stringify(variables: Dict[str, Any]) -> Dict[str, str]:
    # Retell dynamic variables must be strings
    out = {}
    for k, v in variables.items():
        if v is None:
            continue
        out[k] = v if isinstance(v, str) else str(v)
    return out


# ------------------ Calls ------------------
async def create_phone_call(
    to_number: str,
    agent_id: str,
    variables: Dict[str, Any],
    metadata: Dict[str, Any],
) -> Dict[str, Any]:
    """
    Place an outbound call. Returns the provider JSON (call_id, call_status, ...).
    Any non-2xx, network error or timeout raises UpstreamProviderError; we never retry here.
    """
    url = f"{config.RETELL_API_BASE}/v2/create-phone-call"
    payload = {
        "from_number": config.RETELL_PHONE_NUMBER,
        "to_number": to_number,
        "override_agent_id": agent_id,
        "retell_llm_dynamic_variables": _stringify(variables),
        "metadata": metadata,
    }
    try:
        async with httpx.AsyncClient(timeout=httpx.Timeout(config.RETELL_TIMEOUT_SECONDS)) as client:
            r = await client.post(url, headers=get_headers(), json=payload)
    except httpx.HTTPError as e:
        log.error("Retell request to %s failed: %s", to_number, e)
        raise UpstreamProviderError(f"Retell API error: {type(e).__name__}: {e}") from e

    if r.status_code not in (200, 201):
        log.error("Retell create-phone-call error %s: %s", r.status_code, r.text)
        raise UpstreamProviderError(f"Retell API error: {r.status_code} {r.text}", status=r.status_code)

    try:
        data = r.json()
    except ValueError as e:
        raise UpstreamProviderError(f"Retell API error: invalid JSON response: {e}") from e
    if not data.get("call_id"):
        raise UpstreamProviderError("Retell API error: response had no call_id")
    return data
