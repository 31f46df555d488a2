"""
Fuzzy worker lookup used while a caller is on the line.

The voice agent passes whatever name it heard ("jon smyth", "Sara O'Neil")
and gets back one of three tiers: a confident match, a short list to read
back for confirmation, or nothing (the name is then kept as free text).
"""
import logging
import re
from typing import List, Optional, Sequence, Tuple

from pydantic import BaseModel, Field

from helpers import config
from models.reference import Worker

logger = logging.getLogger("identity_resolver")

_DIGRAPHS = (("ph", "f"), ("ck", "k"), ("gh", "g"), ("wr", "r"), ("kn", "n"), ("wh", "w"))


class MatchConfig(BaseModel):
    auto_threshold: float = config.MATCH_AUTO_THRESHOLD
    confirm_threshold: float = config.MATCH_CONFIRM_THRESHOLD
    floor: float = config.MATCH_FLOOR
    given_weight: float = config.MATCH_GIVEN_WEIGHT
    family_weight: float = config.MATCH_FAMILY_WEIGHT
    given_exact_bonus: float = config.MATCH_GIVEN_EXACT_BONUS
    phonetic_bonus: float = config.MATCH_PHONETIC_BONUS
    max_suggestions: int = config.MATCH_MAX_SUGGESTIONS


class WorkerMatchCandidate(BaseModel):
    worker_id: int
    given_name: str = ""
    family_name: str = ""
    full_name: str
    mobile_number: Optional[str] = None
    occupation: Optional[str] = None
    confidence: float = Field(ge=0.0, le=1.0)


class Verdict(BaseModel):
    found: bool = False
    needs_confirmation: bool = False
    worker_id: Optional[int] = None
    given_name: Optional[str] = None
    family_name: Optional[str] = None
    full_name: Optional[str] = None
    mobile_number: Optional[str] = None
    occupation: Optional[str] = None
    confidence: Optional[float] = None
    possible_matches: Optional[List[WorkerMatchCandidate]] = None
    message: str


# ───────────────────────── string scoring ─────────────────────────

def _clean(s: Optional[str]) -> str:
    return " ".join((s or "").lower().split())


def levenshtein(a: str, b: str) -> int:
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    prev = list(range(len(b) + 1))
    for i, ca in enumerate(a, 1):
        cur = [i]
        for j, cb in enumerate(b, 1):
            cur.append(min(prev[j] + 1, cur[j - 1] + 1, prev[j - 1] + (ca != cb)))
        prev = cur
    return prev[-1]


def similarity(a: Optional[str], b: Optional[str]) -> float:
    """Symmetric, case/whitespace-insensitive similarity in [0, 1]."""
    x, y = _clean(a), _clean(b)
    if not x or not y:
        return 0.0
    if x == y:
        return 1.0
    if x in y or y in x:
        return 0.9
    return 1.0 - levenshtein(x, y) / max(len(x), len(y))


def phonetic_code(name: Optional[str]) -> str:
    s = re.sub(r"[^a-z]", "", (name or "").lower())
    for src, dst in _DIGRAPHS:
        s = s.replace(src, dst)
    s = re.sub(r"[aeiou]", "", s)
    return s[:6]


def split_name(spoken: Optional[str]) -> Tuple[str, str]:
    parts = (spoken or "").split()
    if not parts:
        return "", ""
    return parts[0], " ".join(parts[1:])


def score_worker(spoken_name: str, given_name: Optional[str], family_name: Optional[str],
                 cfg: Optional[MatchConfig] = None) -> float:
    cfg = cfg or MatchConfig()
    search_given, search_family = split_name(_clean(spoken_name))
    search_full = _clean(spoken_name)
    w_given, w_family = _clean(given_name), _clean(family_name)
    w_full = f"{w_given} {w_family}".strip()

    if w_full == search_full:
        return 1.0

    given_sim = similarity(w_given, search_given) if search_given else 0.0
    family_sim = similarity(w_family, search_family) if search_family else 0.0
    phonetic = cfg.phonetic_bonus if phonetic_code(w_full) == phonetic_code(search_full) else 0.0

    score = max(
        similarity(w_full, search_full),
        given_sim * cfg.given_weight + family_sim * cfg.family_weight,
        (given_sim + family_sim) / 2 + phonetic,
    )
    if w_given and w_given == search_given:
        score += cfg.given_exact_bonus
    return min(1.0, score)


# ───────────────────────── decision ─────────────────────────

def rank_workers(spoken_name: str, workers: Sequence[Worker],
                 cfg: Optional[MatchConfig] = None) -> List[WorkerMatchCandidate]:
    cfg = cfg or MatchConfig()
    scored = []
    for w in workers:
        if not (w.given_name or w.family_name):
            continue
        conf = score_worker(spoken_name, w.given_name, w.family_name, cfg)
        if conf <= cfg.floor:
            continue
        scored.append(WorkerMatchCandidate(
            worker_id=w.id,
            given_name=w.given_name or "",
            family_name=w.family_name or "",
            full_name=w.full_name,
            mobile_number=w.mobile_number,
            occupation=w.occupation,
            confidence=round(conf, 4),
        ))
    scored.sort(key=lambda c: c.confidence, reverse=True)
    return scored


def decide(spoken_name: str, ranked: List[WorkerMatchCandidate],
           cfg: Optional[MatchConfig] = None) -> Verdict:
    cfg = cfg or MatchConfig()
    if not ranked:
        return Verdict(
            message=f"I couldn't find {spoken_name} in our records. "
                    "I'll note down their name and our team will add their details."
        )

    best = ranked[0]
    if best.confidence >= cfg.auto_threshold:
        return Verdict(
            found=True,
            worker_id=best.worker_id,
            given_name=best.given_name,
            family_name=best.family_name,
            full_name=best.full_name,
            mobile_number=best.mobile_number,
            occupation=best.occupation,
            confidence=best.confidence,
            message=f"Found {best.full_name} in our system.",
        )

    possible = [c for c in ranked if c.confidence >= cfg.confirm_threshold][: cfg.max_suggestions]
    if len(possible) == 1:
        return Verdict(
            needs_confirmation=True,
            possible_matches=possible,
            message=f"I found someone who might be a match: {possible[0].full_name}. Is that the injured worker?",
        )
    if possible:
        names = ", or ".join(c.full_name for c in possible)
        return Verdict(
            needs_confirmation=True,
            possible_matches=possible,
            message=f"I found a few people with similar names: {names}. Which one is the injured worker?",
        )
    return Verdict(
        message=f"I couldn't find {spoken_name} in our records. "
                "I'll note down their name and our team will add their details."
    )


async def resolve_worker(spoken_name: Optional[str], employer_id: Optional[int] = None,
                         cfg: Optional[MatchConfig] = None) -> Verdict:
    name = " ".join((spoken_name or "").split())
    if not name:
        return Verdict(message="No worker name provided")

    qs = Worker.filter(is_active=True)
    if employer_id is not None:
        qs = qs.filter(employer_id=employer_id)
    workers = await qs.all()

    if not workers:
        scope = " for this employer" if employer_id is not None else ""
        return Verdict(message=f"No workers found{scope}. I'll record the name for now.")

    ranked = rank_workers(name, workers, cfg)
    logger.info("worker lookup %r employer=%s -> top %s", name, employer_id,
                [(c.full_name, c.confidence) for c in ranked[:5]])
    return decide(name, ranked, cfg)
