"""
Tests for the fuzzy worker lookup.

Scoring helpers are pure; resolve_worker runs against the in-memory database.
"""
import pytest

from helpers.identity_resolver import (
    MatchConfig,
    decide,
    levenshtein,
    phonetic_code,
    rank_workers,
    resolve_worker,
    score_worker,
    similarity,
    split_name,
)
from models.reference import Employer, Worker


class TestScoring:
    def test_levenshtein(self):
        assert levenshtein("kitten", "sitting") == 3
        assert levenshtein("", "abc") == 3
        assert levenshtein("same", "same") == 0

    @pytest.mark.parametrize("a,b", [
        ("John", "Jon"),
        ("smith", "smyth"),
        ("Sarah O'Neil", "sara oneil"),
        ("a", "zzzz"),
    ])
    def test_similarity_is_symmetric_and_bounded(self, a, b):
        s = similarity(a, b)
        assert s == similarity(b, a)
        assert 0.0 <= s <= 1.0

    def test_similarity_edges(self):
        assert similarity("John", "  john ") == 1.0
        assert similarity("", "john") == 0.0
        assert similarity(None, None) == 0.0
        assert similarity("jon", "jonathan") == 0.9

    def test_phonetic_code(self):
        assert phonetic_code("Stephen") == phonetic_code("Stefen")
        assert phonetic_code("Knight") == "ngt"
        assert len(phonetic_code("Bartholomew Richardson")) == 6

    def test_split_name(self):
        assert split_name("Mary Anne Jones") == ("Mary", "Anne Jones")
        assert split_name("Cher") == ("Cher", "")
        assert split_name("") == ("", "")

    def test_exact_full_name_scores_one(self):
        assert score_worker("john smith", "John", "Smith") == 1.0

    def test_exact_given_name_bonus(self):
        # one substitution in the surname lifts to a certain match with the bonus
        assert score_worker("John Smith", "John", "Smyth") == 1.0
        assert score_worker("John Smith", "Jon", "Smith") == pytest.approx(0.9)

    async def test_thresholds_are_configurable(self, db):
        strict = MatchConfig(auto_threshold=0.99, confirm_threshold=0.95)
        worker = await Worker.create(given_name="John", family_name="Smith")
        ranked = rank_workers("Jon Smith", [worker], strict)
        assert ranked[0].confidence == pytest.approx(0.9)
        verdict = decide("Jon Smith", ranked, strict)
        assert not verdict.found
        assert not verdict.needs_confirmation


@pytest.fixture
async def employer_with_workers(db):
    employer = await Employer.create(id=7, employer_name="Harbour Freight")
    other = await Employer.create(id=8, employer_name="Other Co")
    jon = await Worker.create(given_name="Jon", family_name="Smith", employer=employer, mobile_number="0400 000 001")
    smyth = await Worker.create(given_name="John", family_name="Smyth", employer=employer, occupation="Driver")
    await Worker.create(given_name="John", family_name="Smith", employer=other)
    await Worker.create(given_name="John", family_name="Smith", employer=employer, is_active=False)
    return {"employer": employer, "jon": jon, "smyth": smyth}


class TestResolveWorker:
    async def test_exact_given_name_wins(self, employer_with_workers):
        verdict = await resolve_worker("John Smith", employer_id=7)

        assert verdict.found is True
        assert verdict.worker_id == employer_with_workers["smyth"].id
        assert verdict.full_name == "John Smyth"
        assert verdict.occupation == "Driver"
        assert verdict.confidence == 1.0
        assert verdict.message == "Found John Smyth in our system."

    async def test_close_names_need_confirmation(self, employer_with_workers):
        verdict = await resolve_worker("Jonh Smth", employer_id=7)

        assert verdict.found is False
        assert verdict.needs_confirmation is True
        names = [m.full_name for m in verdict.possible_matches]
        assert names == ["Jon Smith", "John Smyth"]
        assert verdict.message.startswith("I found a few people with similar names")

    async def test_nothing_close_enough(self, employer_with_workers):
        verdict = await resolve_worker("Priya Raman", employer_id=7)

        assert verdict.found is False
        assert verdict.needs_confirmation is False
        assert verdict.possible_matches is None
        assert "Priya Raman" in verdict.message

    async def test_empty_name(self, db):
        verdict = await resolve_worker("   ")
        assert verdict.message == "No worker name provided"

    async def test_employer_without_workers(self, employer_with_workers):
        await Employer.create(id=9, employer_name="Empty Pty Ltd")
        verdict = await resolve_worker("John Smith", employer_id=9)
        assert verdict.found is False
        assert verdict.message == "No workers found for this employer. I'll record the name for now."

    async def test_inactive_workers_ignored(self, employer_with_workers):
        verdict = await resolve_worker("John Smith", employer_id=7)
        assert verdict.worker_id != (await Worker.get(is_active=False)).id
