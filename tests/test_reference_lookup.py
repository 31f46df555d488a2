"""
Tests for the in-call employer and site lookups.
"""
import pytest

from helpers.reference_lookup import SUGGEST_FLOOR, lookup_employer, lookup_site, name_score, strip_suffixes
from models.reference import Employer, Site


class TestNameScore:
    @pytest.mark.parametrize("spoken,name,score", [
        ("Acme Logistics", "acme logistics", 1.0),
        ("urban development", "Urban Development Pty Ltd", 0.9),
        ("development", "Urban Development Pty Ltd", 0.7),
    ])
    def test_tiers(self, spoken, name, score):
        assert name_score(spoken, name) == score

    def test_unrelated_name_is_below_suggestions(self):
        assert name_score("zzz", "Acme Logistics") < SUGGEST_FLOOR

    def test_suffixes_are_dropped(self):
        assert strip_suffixes("Coastal Freight Group Pty Ltd") == "coastal freight"
        assert name_score("coastal freight", "Coastal Freight Group Pty Ltd") == 0.9

    def test_misheard_word_still_scores(self):
        assert name_score("acmee logistics", "Acme Logistics") >= 0.6


@pytest.fixture
async def registry(db):
    acme = await Employer.create(employer_name="Acme Logistics")
    builders = await Employer.create(employer_name="Metro Builders Pty Ltd")
    plumbing = await Employer.create(employer_name="Metro Plumbing")
    depot = await Site.create(site_name="Parramatta Depot", employer=acme)
    await Site.create(site_name="Penrith Warehouse", employer=acme)
    await Site.create(site_name="Parramatta Yard", employer=builders)
    return {"acme": acme, "builders": builders, "plumbing": plumbing, "depot": depot}


class TestLookupEmployer:
    async def test_prefix_match_is_found(self, registry):
        result = await lookup_employer("acme")
        assert result.found is True
        assert result.employer_id == registry["acme"].id
        assert result.message == "Found Acme Logistics"

    async def test_legal_suffix_not_needed(self, registry):
        result = await lookup_employer("Metro Builders")
        assert result.employer_id == registry["builders"].id

    async def test_ambiguous_name_gives_suggestions(self, registry):
        result = await lookup_employer("northern metro")
        assert result.found is False
        assert set(result.suggestions) == {"Metro Builders Pty Ltd", "Metro Plumbing"}
        assert result.message.startswith("I found a few companies with similar names.")

    async def test_nothing_close(self, registry):
        result = await lookup_employer("Zyxw Qqq")
        assert result.found is False
        assert result.suggestions == []
        assert "work site" in result.message

    async def test_name_too_short(self, registry):
        result = await lookup_employer(" a ")
        assert result.found is False
        assert result.message == "Please provide an employer or company name"


class TestLookupSite:
    async def test_scoped_to_employer(self, registry):
        result = await lookup_site("parramatta depot", employer_id=registry["acme"].id)
        assert result.found is True
        assert result.site_id == registry["depot"].id
        assert result.employer_name == "Acme Logistics"
        assert result.message == "Found Parramatta Depot, which belongs to Acme Logistics"

    async def test_same_name_across_employers_needs_scope(self, registry):
        unscoped = await lookup_site("parramatta")
        assert unscoped.found is True

        scoped = await lookup_site("parramatta", employer_id=registry["builders"].id)
        assert scoped.site_name == "Parramatta Yard"
        assert scoped.employer_id == registry["builders"].id

    async def test_unknown_site(self, registry):
        result = await lookup_site("Dubbo", employer_id=registry["acme"].id)
        assert result.found is False
        assert result.message == "I couldn't find that site for that company. Can you describe where it is?"
