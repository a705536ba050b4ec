"""Match an e-Transfer sender name to exactly one active tenant.

Matching is deterministic and makes no external calls. A sender is compared
against every tenant on the roster; the candidate with the longest normalized
overlap wins, and an identical name beats one that only contains the query.
When two or more candidates share the top score the result is no match, so
money is never applied to a guessed tenant.
"""

import logging
import re
from dataclasses import dataclass
from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from rental_platform.domain.enums import UserRole, UserStatus
from rental_platform.domain.models import Tenancy, Unit, User

logger = logging.getLogger(__name__)

_STRIP_CHARS = re.compile(r"[.,]")
# Identical names outrank a longer name that merely contains the query
EXACT_MATCH_BONUS = 1


@dataclass(frozen=True)
class MatchedTenant:
    user_id: str
    name: str
    email: str
    unit_label: Optional[str] = None
    building_name: Optional[str] = None


@dataclass(frozen=True)
class RankedCandidate:
    tenant: MatchedTenant
    score: int


def normalize_name(name: Optional[str]) -> str:
    """Lowercase, drop periods and commas, trim and collapse whitespace."""
    if not name:
        return ""
    return " ".join(_STRIP_CHARS.sub(" ", name.lower()).split())


def _token_matches(small: str, large: str) -> bool:
    if small == large:
        return True
    # A lone initial stands for any token starting with that letter
    return len(small) == 1 and large.startswith(small)


def _covered_length(subset: list[str], superset: list[str]) -> int:
    """Summed length of ``subset`` tokens if each maps to a distinct superset token, else 0."""
    if not subset or len(subset) > len(superset):
        return 0

    available = list(superset)
    covered = 0
    # Full tokens claim their exact partner before initials pick from the rest
    for token in sorted(subset, key=len, reverse=True):
        partner = next((t for t in available if t == token), None)
        if partner is None:
            partner = next((t for t in available if _token_matches(token, t)), None)
        if partner is None:
            return 0
        available.remove(partner)
        covered += len(token)
    return covered


def match_score(query: str, candidate: str) -> int:
    """Overlap score of two normalized names; 0 means not a candidate."""
    if not query or not candidate:
        return 0
    if query == candidate:
        return len(query) + EXACT_MATCH_BONUS

    score = 0
    if query in candidate:
        score = len(query)
    elif candidate in query:
        score = len(candidate)

    query_tokens = query.split()
    candidate_tokens = candidate.split()
    score = max(
        score,
        _covered_length(query_tokens, candidate_tokens),
        _covered_length(candidate_tokens, query_tokens),
    )
    return score


def rank_tenant_candidates(
    sender_name: Optional[str],
    roster: Sequence[MatchedTenant],
) -> list[RankedCandidate]:
    """Every accepted candidate, highest score first (ties ordered by name, then id)."""
    query = normalize_name(sender_name)
    if not query:
        return []

    ranked = []
    for tenant in roster:
        score = match_score(query, normalize_name(tenant.name))
        if score > 0:
            ranked.append(RankedCandidate(tenant=tenant, score=score))

    ranked.sort(key=lambda c: (-c.score, normalize_name(c.tenant.name), c.tenant.user_id))
    return ranked


def select_unambiguous(ranked: Sequence[RankedCandidate]) -> Optional[MatchedTenant]:
    """The top candidate, or None when nothing matched or the top score is shared."""
    if not ranked:
        return None
    if len(ranked) > 1 and ranked[0].score == ranked[1].score:
        return None
    return ranked[0].tenant


def match_tenant(
    sender_name: Optional[str],
    roster: Sequence[MatchedTenant],
) -> Optional[MatchedTenant]:
    """Resolve ``sender_name`` to one tenant, or None if unmatched or ambiguous."""
    return select_unambiguous(rank_tenant_candidates(sender_name, roster))


async def load_active_roster(db: AsyncSession) -> list[MatchedTenant]:
    """Active tenants with an active tenancy, read fresh from the database.

    A tenant holding several active tenancies appears once, with the unit
    of the most recently started tenancy.
    """
    result = await db.execute(
        select(User, Unit)
        .join(Tenancy, Tenancy.user_id == User.id)
        .join(Unit, Unit.id == Tenancy.unit_id)
        .where(
            User.role == UserRole.TENANT.value,
            User.status == UserStatus.ACTIVE.value,
            Tenancy.is_active.is_(True),
        )
        .order_by(User.id, Tenancy.start_date.desc(), Tenancy.id)
    )

    roster: dict[str, MatchedTenant] = {}
    for user, unit in result.all():
        if user.id in roster or not user.name:
            continue
        roster[user.id] = MatchedTenant(
            user_id=user.id,
            name=user.name,
            email=user.email,
            unit_label=unit.unit_label,
            building_name=unit.building_name,
        )
    return list(roster.values())
