"""
Employer and site lookup while a caller is on the line.

Company names are heard loosely ("urban development" for "Urban Development
Pty Ltd", "acme logistic" for "Acme Logistics"), so a spoken name is scored
against the registry by prefix and containment first and edit distance
second. A clear winner is returned as found; otherwise the closest names
come back as suggestions for the agent to read out.
"""
import logging
from typing import List, Optional, Sequence, Tuple

from pydantic import BaseModel

from helpers import config
from helpers.identity_resolver import similarity
from models.reference import Employer, Site

logger = logging.getLogger("reference_lookup")

_SUFFIXES = (
    " pty ltd", " pty. ltd.", " pty", " ltd", " limited", " inc", " incorporated", " corp",
    " corporation", " co", " company", " group", " holdings", " australia", " aust",
)

AUTO_SELECT_SCORE = 0.7
SINGLE_MATCH_SCORE = 0.6
CLEAR_LEAD = 0.2
SUGGEST_FLOOR = 0.4


class EmployerLookup(BaseModel):
    found: bool = False
    employer_id: Optional[int] = None
    employer_name: Optional[str] = None
    suggestions: List[str] = []
    message: str


class SiteLookup(BaseModel):
    found: bool = False
    site_id: Optional[int] = None
    site_name: Optional[str] = None
    employer_id: Optional[int] = None
    employer_name: Optional[str] = None
    suggestions: List[str] = []
    message: str


def _clean(s: Optional[str]) -> str:
    return " ".join((s or "").lower().split())


def strip_suffixes(name: str) -> str:
    base = _clean(name)
    changed = True
    while changed:
        changed = False
        for suffix in _SUFFIXES:
            if base.endswith(suffix):
                base = base[: -len(suffix)].strip()
                changed = True
    return base


def name_score(spoken: str, candidate: str) -> float:
    """
    1.0 exact, 0.95 exact once legal suffixes are dropped, 0.9/0.85 prefix,
    0.7 containment, 0.6 every spoken word present, 0.4 some word present.
    Below that, edit-distance similarity against the suffix-free name.
    """
    search, name = _clean(spoken), _clean(candidate)
    if not search or not name:
        return 0.0
    if search == name:
        return 1.0
    if name.startswith(search):
        return 0.9
    base = strip_suffixes(name)
    if search == base:
        return 0.95
    if base.startswith(search):
        return 0.85
    if search in name:
        return 0.7

    words = [w for w in search.split() if len(w) > 2]
    name_words = name.split()
    hits = [any(nw in w or w in nw for nw in name_words) for w in words]
    if words and all(hits):
        return 0.6
    fuzzy = similarity(search, base)
    if any(hits):
        return max(0.4, fuzzy)
    return fuzzy


def rank(spoken: str, rows: Sequence, attr: str) -> List[Tuple[float, object]]:
    scored = [(name_score(spoken, getattr(r, attr)), r) for r in rows]
    scored = [(s, r) for s, r in scored if s >= SUGGEST_FLOOR]
    scored.sort(key=lambda x: x[0], reverse=True)
    return scored


def pick(scored: List[Tuple[float, object]]):
    """The winning row, or None when the agent should read out suggestions."""
    if not scored:
        return None
    best_score, best = scored[0]
    if best_score >= AUTO_SELECT_SCORE:
        return best
    if len(scored) == 1 and best_score >= SINGLE_MATCH_SCORE:
        return best
    if len(scored) > 1 and best_score >= SINGLE_MATCH_SCORE and best_score - scored[1][0] >= CLEAR_LEAD:
        return best
    return None


async def lookup_employer(spoken_name: Optional[str]) -> EmployerLookup:
    name = " ".join((spoken_name or "").split())
    if len(name) < 2:
        return EmployerLookup(message="Please provide an employer or company name")

    scored = rank(name, await Employer.all(), "employer_name")
    logger.info("employer lookup %r -> %s", name, [(e.employer_name, round(s, 2)) for s, e in scored[:5]])

    best = pick(scored)
    if best:
        return EmployerLookup(found=True, employer_id=best.id, employer_name=best.employer_name,
                              message=f"Found {best.employer_name}")
    if scored:
        suggestions = [e.employer_name for _, e in scored[: config.MATCH_MAX_SUGGESTIONS]]
        return EmployerLookup(
            suggestions=suggestions,
            message=f"I found a few companies with similar names. Did you mean {suggestions[0]}, "
                    "or one of the others?",
        )
    return EmployerLookup(
        message="I couldn't find that company in our system. Can you tell me the work site or location name instead?"
    )


async def lookup_site(spoken_name: Optional[str], employer_id: Optional[int] = None) -> SiteLookup:
    name = " ".join((spoken_name or "").split())
    if len(name) < 2:
        return SiteLookup(message="Please provide a site or location name")

    qs = Site.all().prefetch_related("employer")
    if employer_id is not None:
        qs = Site.filter(employer_id=employer_id).prefetch_related("employer")
    scored = rank(name, await qs, "site_name")
    logger.info("site lookup %r employer=%s -> %s", name, employer_id,
                [(s.site_name, round(score, 2)) for score, s in scored[:5]])

    best = pick(scored)
    if best:
        owner = best.employer.employer_name
        return SiteLookup(found=True, site_id=best.id, site_name=best.site_name, employer_id=best.employer_id,
                          employer_name=owner, message=f"Found {best.site_name}, which belongs to {owner}")
    if scored:
        suggestions = [s.site_name for _, s in scored[: config.MATCH_MAX_SUGGESTIONS]]
        return SiteLookup(
            employer_id=employer_id,
            suggestions=suggestions,
            message=f"I found a few sites with similar names. Did you mean {suggestions[0]}, or one of the others?",
        )
    scope = " for that company" if employer_id is not None else ""
    return SiteLookup(
        employer_id=employer_id,
        message=f"I couldn't find that site{scope}. Can you describe where it is?",
    )
