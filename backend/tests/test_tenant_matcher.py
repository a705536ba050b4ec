"""Unit tests for sender-name to tenant matching."""

import random

import pytest

from rental_platform.domain.enums import UserStatus
from rental_platform.services.tenant_matcher import (
    EXACT_MATCH_BONUS,
    MatchedTenant,
    load_active_roster,
    match_score,
    match_tenant,
    normalize_name,
    rank_tenant_candidates,
    select_unambiguous,
)


def _tenant(name: str, user_id: str | None = None) -> MatchedTenant:
    return MatchedTenant(user_id=user_id or name.lower().replace(" ", "-"), name=name, email=f"{name[:3]}@t.test")


# ---------------------------------------------------------------------------
# Normalization and scoring
# ---------------------------------------------------------------------------


class TestNormalizeName:
    @pytest.mark.parametrize("raw,expected", [
        ("John Smith", "john smith"),
        ("  JOHN   SMITH  ", "john smith"),
        ("Smith, John", "smith john"),
        ("J. Smith", "j smith"),
        ("", ""),
        (None, ""),
    ])
    def test_normalize(self, raw, expected):
        assert normalize_name(raw) == expected


class TestMatchScore:
    def test_exact_match_scores_full_length_plus_bonus(self):
        assert match_score("john smith", "john smith") == len("john smith") + EXACT_MATCH_BONUS

    def test_substring_either_direction(self):
        assert match_score("john", "john smith") == 4
        assert match_score("john smith jr", "john smith") == len("john smith")

    def test_reordered_tokens(self):
        assert match_score("smith john", "john smith") == len("smithjohn")

    def test_initial_matches_token(self):
        assert match_score("j smith", "john smith") > 0

    def test_unrelated_names_score_zero(self):
        assert match_score("mary jones", "john smith") == 0

    def test_empty_inputs_score_zero(self):
        assert match_score("", "john smith") == 0
        assert match_score("john smith", "") == 0


# ---------------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------------


class TestMatchTenant:
    def test_exact_name(self):
        roster = [_tenant("John Smith"), _tenant("Mary Jones")]
        assert match_tenant("John Smith", roster).name == "John Smith"

    def test_case_and_punctuation_insensitive(self):
        roster = [_tenant("John Smith"), _tenant("Mary Jones")]
        assert match_tenant("SMITH, JOHN", roster).name == "John Smith"

    def test_bank_style_initial(self):
        roster = [_tenant("John Smith"), _tenant("Mary Jones")]
        assert match_tenant("J. Smith", roster).name == "John Smith"

    def test_longest_overlap_wins(self):
        roster = [_tenant("John Smith"), _tenant("John Smithers")]
        assert match_tenant("John Smithers", roster).name == "John Smithers"

    def test_no_candidate(self):
        roster = [_tenant("John Smith"), _tenant("Mary Jones")]
        assert match_tenant("Peter Parker", roster) is None

    def test_empty_sender(self):
        assert match_tenant("", [_tenant("John Smith")]) is None
        assert match_tenant(None, [_tenant("John Smith")]) is None

    def test_empty_roster(self):
        assert match_tenant("John Smith", []) is None

    def test_exact_name_beats_longer_name(self):
        roster = [_tenant("John Smith"), _tenant("John Smithers")]
        assert match_tenant("John Smith", roster).name == "John Smith"

    def test_equal_overlap_is_ambiguous(self):
        roster = [_tenant("John Smith"), _tenant("Jane Smith")]
        ranked = rank_tenant_candidates("Smith", roster)
        assert ranked[0].score == ranked[1].score
        assert select_unambiguous(ranked) is None

    def test_same_name_twice_is_ambiguous(self):
        roster = [_tenant("John Smith", "a"), _tenant("John Smith", "b")]
        assert match_tenant("John Smith", roster) is None

    def test_ranking_is_deterministic(self):
        roster = [_tenant("John Smithers", "z"), _tenant("John Smith", "b"), _tenant("John Smith", "a")]
        ranked = rank_tenant_candidates("John Smith", roster)
        assert [c.tenant.user_id for c in ranked] == ["a", "b", "z"]


class TestTieProperty:
    """Whenever the top score is shared, no tenant is returned."""

    FIRST = ["Ana", "Ben", "Chen", "Dana", "Eli", "Fatima", "Gus", "Hiro", "Ines", "Jon"]
    LAST = ["Lee", "Leeds", "Park", "Parker", "Ng", "Nguyen", "Ross", "Rossi", "Wu", "Wood"]

    @pytest.mark.parametrize("seed", range(25))
    def test_shared_top_score_never_matches(self, seed):
        rng = random.Random(seed)
        roster = [
            _tenant(f"{rng.choice(self.FIRST)} {rng.choice(self.LAST)}", f"t{i}")
            for i in range(rng.randint(2, 8))
        ]
        sender = rng.choice(roster).name if rng.random() < 0.7 else f"{rng.choice(self.FIRST)} {rng.choice(self.LAST)}"

        ranked = rank_tenant_candidates(sender, roster)
        result = select_unambiguous(ranked)

        if not ranked:
            assert result is None
        elif len(ranked) > 1 and ranked[0].score == ranked[1].score:
            assert result is None
        else:
            assert result == ranked[0].tenant
            assert all(c.score < ranked[0].score for c in ranked[1:])

    @pytest.mark.parametrize("seed", range(10))
    def test_order_of_roster_does_not_change_result(self, seed):
        rng = random.Random(seed)
        roster = [_tenant(f"{rng.choice(self.FIRST)} {rng.choice(self.LAST)}", f"t{i}") for i in range(6)]
        sender = roster[0].name
        shuffled = list(roster)
        rng.shuffle(shuffled)
        assert match_tenant(sender, roster) == match_tenant(sender, shuffled)


# ---------------------------------------------------------------------------
# Roster loading
# ---------------------------------------------------------------------------


class TestLoadActiveRoster:
    async def test_only_active_tenants_with_active_tenancy(self, db_session, make_tenant, make_admin):
        active = await make_tenant(name="John Smith", unit_label="101")
        await make_tenant(name="Former Tenant", tenancy_active=False)
        await make_tenant(name="Inactive Account", status=UserStatus.INACTIVE.value)
        await make_admin()

        roster = await load_active_roster(db_session)

        assert [t.user_id for t in roster] == [active.id]
        assert roster[0].unit_label == "101"
        assert roster[0].building_name == "Maple Court"
