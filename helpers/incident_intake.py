"""
Inbound incident intake.

While an incident-reporter call is live, the agent calls the staging tool
whenever it has learnt something ("the worker is Sam Lee", "left wrist").
Each call upserts a staging row keyed by the provider call id. When the
call ends the staged fields are merged with the provider's analysis and
turned into a single Incident.
"""
import json
import logging
import random
from datetime import date, timedelta
from typing import Any, Dict, Iterable, Optional, Tuple

from pydantic import BaseModel
from tortoise.exceptions import BaseORMException, IntegrityError
from tortoise.transactions import in_transaction

from helpers import config
from helpers.call_dispatcher import log_activity, now_utc
from helpers.identity_resolver import resolve_worker, similarity, split_name
from helpers.Normalizers import normalize_date_iso, normalize_phone, normalize_time_hhmm, phone_variants
from helpers.errors import NotFoundError, PersistenceError, ValidationError
from models.incident import Incident
from models.incident_staging import STAGED_FIELDS, IncidentStaging
from models.reference import Employer, MedicalCenter, Site, Worker
from models.voice_task import VoiceTask, VoiceTaskStatus, VoiceTaskType

logger = logging.getLogger("incident_intake")

_ID_FIELDS = {"employer_id", "site_id", "worker_id"}
_BOOL_FIELDS = {"caller_was_witness"}

# other names agents and analysis schemas have used for the same field
_ALIASES = {
    "body_part_injured": ("body_part",),
    "severity": ("injury_severity",),
    "worker_name": ("injured_worker_name", "injured_worker"),
    "caller_phone": ("caller_phone_number",),
    "treatment_received": ("treatment_provided",),
    "caller_role": ("caller_relationship",),
}

SEVERITY_CLASSIFICATION = {
    "minor": "Minor",
    "moderate": "Moderate",
    "severe": "Serious",
    "serious": "Serious",
    "critical": "Critical",
}

_INJURY_KEYWORDS = (
    (("fracture", "broke", "broken"), "Fracture"),
    (("sprain", "strain"), "Sprain/Strain"),
    (("cut", "laceration"), "Laceration"),
    (("burn",), "Burn"),
    (("crush",), "Crush Injury"),
    (("bruise", "contusion"), "Contusion"),
)


class StagedIncident(BaseModel):
    call_id: str
    employer_id: Optional[int] = None
    employer_name: Optional[str] = None
    site_id: Optional[int] = None
    site_name: Optional[str] = None
    worker_id: Optional[int] = None
    worker_name: Optional[str] = None
    caller_name: Optional[str] = None
    caller_role: Optional[str] = None
    caller_position: Optional[str] = None
    caller_phone: Optional[str] = None
    injury_type: Optional[str] = None
    injury_description: Optional[str] = None
    body_part_injured: Optional[str] = None
    body_side: Optional[str] = None
    severity: Optional[str] = None
    date_of_injury: Optional[str] = None
    time_of_injury: Optional[str] = None
    treatment_received: Optional[str] = None
    witness_name: Optional[str] = None
    caller_was_witness: Optional[bool] = None

    def supplied(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True, exclude={"call_id"})


class FinalizedIncident(BaseModel):
    incident_id: int
    incident_number: str
    worker_id: Optional[int] = None
    created: bool = True
    needs_review: bool = False


# ───────────────────────── payload extraction ─────────────────────────

def _as_dict(value: Any) -> Dict[str, Any]:
    if isinstance(value, dict):
        return value
    if isinstance(value, str) and value.strip():
        try:
            parsed = json.loads(value)
        except ValueError:
            return {}
        return parsed if isinstance(parsed, dict) else {}
    return {}


def _coerce(key: str, value: Any) -> Any:
    if value is None:
        return None
    if key in _ID_FIELDS:
        try:
            return int(str(value).strip())
        except ValueError:
            return None
    if key in _BOOL_FIELDS:
        if isinstance(value, bool):
            return value
        s = str(value).strip().lower()
        if s in ("true", "yes", "y", "1"):
            return True
        if s in ("false", "no", "n", "0"):
            return False
        return None
    s = str(value).strip()
    return s or None


def _pick(source: Dict[str, Any], key: str) -> Any:
    for name in (key,) + _ALIASES.get(key, ()):
        v = _coerce(key, source.get(name))
        if v is not None:
            return v
    return None


def _merge(sources: Iterable[Dict[str, Any]], keys: Iterable[str]) -> Dict[str, Any]:
    """First non-empty value per key, in source order."""
    sources = list(sources)
    out = {}
    for key in keys:
        for src in sources:
            v = _pick(src, key)
            if v is not None:
                out[key] = v
                break
    return out


def extract_staging_fields(payload: Dict[str, Any]) -> StagedIncident:
    """
    Tool payloads come in three shapes. Precedence per field:
    function args, then the call's collected variables, then flat top-level keys.
    """
    payload = payload or {}
    args = _as_dict(payload.get("args")) or _as_dict(payload.get("arguments"))
    call = _as_dict(payload.get("call"))
    collected = _as_dict(call.get("collected_dynamic_variables"))

    call_id = _coerce("call_id", args.get("call_id") or call.get("call_id") or payload.get("call_id"))
    if not call_id:
        raise ValidationError("call_id is required")

    return StagedIncident(call_id=call_id, **_merge((args, collected, payload), STAGED_FIELDS))


def confirmation_message(staged: StagedIncident) -> str:
    parts = []
    if staged.worker_name:
        parts.append(f"for {staged.worker_name}")
    if staged.injury_type:
        parts.append(f"with a {staged.injury_type.lower()}")
    if staged.body_part_injured:
        side = staged.body_side if staged.body_side and staged.body_side.lower() != "not_applicable" else None
        part = staged.body_part_injured.lower()
        parts.append(f"to their {side.lower()} {part}" if side else f"to their {part}")
    if staged.site_name:
        parts.append(f"at {staged.site_name}")
    if not parts:
        return "I've recorded the incident details. Our team will follow up shortly."
    return f"I've recorded the incident {' '.join(parts)}. Our team will follow up shortly."


async def stage_incident(staged: StagedIncident) -> IncidentStaging:
    """Upsert by call id; only supplied fields are written so earlier answers survive."""
    supplied = staged.supplied()
    try:
        record, created = await IncidentStaging.get_or_create(call_id=staged.call_id, defaults=supplied)
        if not created and supplied:
            await IncidentStaging.filter(call_id=staged.call_id).update(**supplied)
            await record.refresh_from_db()
    except BaseORMException as e:
        raise PersistenceError(f"Could not stage fields for call {staged.call_id}: {e}") from e
    logger.info("staged %s field(s) for call %s (%s)", len(supplied), staged.call_id,
                "new" if created else "update")
    return record


# ───────────────────────── reference resolution ─────────────────────────

def _best_by_name(name: str, rows, attr: str, threshold: float):
    best, best_score = None, 0.0
    for row in rows:
        score = similarity(name, getattr(row, attr))
        if score > best_score:
            best, best_score = row, score
    return best if best_score >= threshold else None


async def resolve_employer(employer_id: Optional[int], employer_name: Optional[str]) -> Tuple[Employer, Optional[str]]:
    """Returns (employer, review_reason). A review reason means the default employer was used."""
    if employer_id:
        employer = await Employer.get_or_none(id=employer_id)
        if employer:
            return employer, None
    if employer_name:
        employer = await Employer.filter(employer_name__icontains=employer_name).order_by("id").first()
        if not employer:
            employer = _best_by_name(employer_name, await Employer.all(), "employer_name",
                                     config.MATCH_CONFIRM_THRESHOLD)
        if employer:
            return employer, None

    fallback = await Employer.get_or_none(id=config.DEFAULT_EMPLOYER_ID)
    if not fallback:
        raise NotFoundError(f"Default employer {config.DEFAULT_EMPLOYER_ID} does not exist")
    if employer_name:
        reason = f"Employer '{employer_name}' not matched; assigned to default employer"
    else:
        reason = "No employer given; assigned to default employer"
    logger.warning(reason)
    return fallback, reason


async def resolve_site(employer_id: int, site_id: Optional[int], site_name: Optional[str]) -> Optional[Site]:
    if site_id:
        site = await Site.get_or_none(id=site_id, employer_id=employer_id)
        if site:
            return site
    if not site_name:
        return None
    site = await Site.filter(employer_id=employer_id, site_name__icontains=site_name).order_by("id").first()
    if site:
        return site
    return _best_by_name(site_name, await Site.filter(employer_id=employer_id), "site_name",
                         config.MATCH_CONFIRM_THRESHOLD)


async def resolve_or_create_worker(fields: Dict[str, Any], employer_id: int) -> Tuple[Worker, bool]:
    """Explicit id, then phone, then a confident name match, else a new worker."""
    if fields.get("worker_id"):
        worker = await Worker.get_or_none(id=fields["worker_id"])
        if worker:
            return worker, False

    phone = fields.get("worker_phone")
    variants = phone_variants(phone)
    if variants:
        worker = await Worker.filter(mobile_number__in=variants).first() \
            or await Worker.filter(phone_number__in=variants).first()
        if worker:
            return worker, False

    name = fields.get("worker_name")
    if name:
        verdict = await resolve_worker(name, employer_id)
        if verdict.found and verdict.worker_id:
            worker = await Worker.get(id=verdict.worker_id)
            return worker, False

    given, family = split_name(name)
    worker = await Worker.create(
        given_name=given or "Unknown",
        family_name=family or "Unknown",
        mobile_number=normalize_phone(phone) or None,
        employer_id=employer_id,
        is_active=True,
    )
    logger.info("created worker %s (%s) for employer %s", worker.id, worker.full_name, employer_id)
    return worker, True


# ───────────────────────── finalize ─────────────────────────

def infer_injury_type(description: Optional[str]) -> str:
    d = (description or "").lower()
    for words, label in _INJURY_KEYWORDS:
        if any(w in d for w in words):
            return label
    return "Workplace Injury"


def build_case_notes(fields: Dict[str, Any], call_id: str, transcript: Optional[str]) -> str:
    lines = []
    if fields.get("caller_name"):
        role = fields.get("caller_role") or fields.get("caller_position") or "unknown role"
        lines.append(f"Reported by: {fields['caller_name']} ({role})")
        if fields.get("caller_phone"):
            lines.append(f"Caller phone: {fields['caller_phone']}")
    if fields.get("witness_name"):
        lines.append(f"Witness: {fields['witness_name']}")
    if fields.get("caller_was_witness") is not None:
        lines.append(f"Caller witnessed incident: {'yes' if fields['caller_was_witness'] else 'no'}")
    if fields.get("severity"):
        lines.append(f"Reported severity: {fields['severity']}")
    blocks = ["\n".join(lines)] if lines else []
    blocks.append(f"Incident reported via AI voice agent (Call ID: {call_id}).")
    if transcript:
        blocks.append(f"Transcript:\n{transcript}")
    return "\n\n".join(blocks)


async def generate_incident_number(on: Optional[date] = None) -> str:
    day = (on or date.today()).strftime("%Y%m%d")
    for _ in range(10):
        number = f"INC-{day}-{random.randint(0, 9999):04d}"
        if not await Incident.filter(incident_number=number).exists():
            return number
    raise ValidationError("Could not allocate a unique incident number")


async def schedule_follow_up_booking(incident: Incident, worker: Optional[Worker]) -> Optional[VoiceTask]:
    mc = await MedicalCenter.filter(preferred_provider=True, active=True).order_by("id").first()
    if not mc or not mc.phone_number:
        return None
    task = await VoiceTask.create(
        incident_id=incident.id,
        worker_id=worker.id if worker else None,
        medical_center_id=mc.id,
        task_type=VoiceTaskType.BOOKING_GET_TIMES,
        priority=config.FOLLOW_UP_BOOKING_PRIORITY,
        status=VoiceTaskStatus.PENDING,
        target_phone=normalize_phone(mc.phone_number),
        target_name=mc.name,
        context_data={
            "medical_center_id": mc.id,
            "worker_name": worker.full_name if worker else None,
            "injury_type": incident.injury_type,
            "follow_up": True,
        },
        scheduled_at=now_utc() + timedelta(minutes=config.FOLLOW_UP_BOOKING_DELAY_MINUTES),
        created_by="ai_agent",
    )
    logger.info("follow-up booking task %s scheduled with %s for incident %s", task.id, mc.name, incident.id)
    return task


async def finalize_inbound_incident(
    call_id: Optional[str],
    extracted_data: Optional[Dict[str, Any]] = None,
    transcript: Optional[str] = None,
    caller_phone: Optional[str] = None,
) -> FinalizedIncident:
    """Idempotent per call id: a redelivered webhook returns the incident already created."""
    if not call_id:
        raise ValidationError("call_id is required")

    existing = await Incident.get_or_none(source_call_id=call_id)
    if existing:
        logger.info("incident %s already exists for call %s", existing.incident_number, call_id)
        return FinalizedIncident(incident_id=existing.id, incident_number=existing.incident_number,
                                 worker_id=existing.worker_id, created=False, needs_review=existing.needs_review)

    extracted = _as_dict(extracted_data)
    staging = await IncidentStaging.get_or_none(call_id=call_id)
    staged = staging.as_fields() if staging else {}

    # staged answers beat post-call analysis; absent values never overwrite present ones
    fields = _merge((staged, extracted), STAGED_FIELDS)
    if not fields.get("caller_phone") and caller_phone:
        fields["caller_phone"] = caller_phone
    fields["worker_phone"] = _coerce("worker_phone", extracted.get("worker_phone") or extracted.get("worker_mobile"))
    if not fields["worker_phone"] and "worker" in (fields.get("caller_role") or "").lower():
        fields["worker_phone"] = fields.get("caller_phone")

    employer, review_reason = await resolve_employer(fields.get("employer_id"), fields.get("employer_name"))
    site = await resolve_site(employer.id, fields.get("site_id"), fields.get("site_name"))

    description = fields.get("injury_description")
    severity = (fields.get("severity") or "").lower()
    try:
        # a worker created for this call only survives if the incident insert does
        async with in_transaction():
            worker, worker_created = await resolve_or_create_worker(fields, employer.id)
            incident = await Incident.create(
                incident_number=await generate_incident_number(),
                worker_id=worker.id,
                employer_id=employer.id,
                site_id=site.id if site else None,
                date_of_injury=date.fromisoformat(normalize_date_iso(fields.get("date_of_injury"))),
                time_of_injury=normalize_time_hhmm(fields.get("time_of_injury")),
                injury_type=fields.get("injury_type") or infer_injury_type(description),
                injury_description=description,
                body_part=fields.get("body_part_injured"),
                body_side=fields.get("body_side"),
                classification=SEVERITY_CLASSIFICATION.get(severity),
                treatment_provided=fields.get("treatment_received"),
                incident_status="Voice Agent",
                case_notes=build_case_notes(fields, call_id, transcript),
                notifying_person_name=fields.get("caller_name"),
                notifying_person_telephone=fields.get("caller_phone"),
                notifying_person_position=fields.get("caller_position") or fields.get("caller_role"),
                source_call_id=call_id,
                needs_review=review_reason is not None,
                review_reason=review_reason,
            )
    except IntegrityError:
        # concurrent delivery of the same call got there first
        existing = await Incident.get_or_none(source_call_id=call_id)
        if not existing:
            raise
        return FinalizedIncident(incident_id=existing.id, incident_number=existing.incident_number,
                                 worker_id=existing.worker_id, created=False, needs_review=existing.needs_review)

    if staging:
        await IncidentStaging.filter(id=staging.id).update(processed_at=now_utc())

    await log_activity(
        incident.id,
        f"Incident {incident.incident_number} reported via voice agent",
        details=review_reason,
        metadata={"call_id": call_id, "worker_created": worker_created, "needs_review": incident.needs_review},
        action_type="incident_created",
    )
    await schedule_follow_up_booking(incident, worker)

    logger.info("incident %s created for call %s (worker %s, employer %s)", incident.incident_number,
                call_id, worker.id, employer.id)
    return FinalizedIncident(incident_id=incident.id, incident_number=incident.incident_number,
                             worker_id=worker.id, needs_review=incident.needs_review)


# ───────────────────────── provider webhook ─────────────────────────

def is_incident_report_call(call: Dict[str, Any]) -> bool:
    if not config.RETELL_INCIDENT_AGENT_ID or call.get("agent_id") != config.RETELL_INCIDENT_AGENT_ID:
        return False
    return call.get("direction") == "inbound" or call.get("call_type") == "web_call"


async def handle_incident_call(call: Dict[str, Any]) -> FinalizedIncident:
    analysis = call.get("call_analysis") or {}
    return await finalize_inbound_incident(
        call.get("call_id"),
        extracted_data=analysis.get("custom_analysis_data") or {},
        transcript=call.get("transcript"),
        caller_phone=call.get("from_number"),
    )
