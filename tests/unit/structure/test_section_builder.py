"""Unit tests for SectionArena parent resolution."""

import pytest
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

from tender_ai.schemas.enums import SectionLevel
from tender_ai.schemas.extraction import ExtractedSection
from tender_ai.services.structure.section_builder import SectionArena, order_by_level


def _section(title, number=None, parent=None, level=SectionLevel.SECTION, page=1):
    return ExtractedSection(level=level, number=number, title=title, parent_number=parent, page_number=page)


@pytest.fixture
def section_repo():
    repo = MagicMock()
    repo.create_many = AsyncMock(side_effect=lambda rows: rows)
    return repo


@pytest.fixture
def arena(section_repo):
    return SectionArena(section_repo, uuid4())


class TestResolve:

    def test_parent_in_same_batch_regardless_of_order(self, arena):
        rows, orphans = arena.resolve([
            _section("Do prazo", "1.1", parent="1", level=SectionLevel.CLAUSE),
            _section("Das condições", "1", level=SectionLevel.CHAPTER),
        ])

        by_number = {row["number"]: row for row in rows}
        assert orphans == 0
        assert by_number["1.1"]["parent_id"] == by_number["1"]["id"]
        assert [row["number"] for row in rows] == ["1", "1.1"]

    def test_unknown_parent_becomes_root(self, arena):
        rows, orphans = arena.resolve([_section("Órfã", "7.3", parent="7")])

        assert orphans == 1
        assert rows[0]["parent_id"] is None

    def test_self_reference_is_orphan(self, arena):
        rows, orphans = arena.resolve([_section("Loop", "4", parent="4")])

        assert orphans == 1
        assert rows[0]["parent_id"] is None

    def test_first_occurrence_wins_within_batch(self, arena):
        rows, _ = arena.resolve([
            _section("Primeiro", "2", level=SectionLevel.CHAPTER),
            _section("Segundo", "2", level=SectionLevel.CHAPTER),
            _section("Filho", "2.1", parent="2", level=SectionLevel.CLAUSE),
        ])

        first = next(r for r in rows if r["title"] == "Primeiro")
        child = next(r for r in rows if r["title"] == "Filho")
        assert child["parent_id"] == first["id"]

    def test_parents_first_breaks_cycles(self):
        a, b = uuid4(), uuid4()
        rows = [
            {"id": a, "parent_id": b, "number": "a"},
            {"id": b, "parent_id": a, "number": "b"},
        ]

        ordered = SectionArena._parents_first(rows)

        assert {row["id"] for row in ordered} == {a, b}
        assert all(row["parent_id"] is None for row in ordered)


class TestAddBatch:

    @pytest.mark.asyncio
    async def test_parent_from_earlier_batch(self, arena, section_repo):
        await arena.add_batch([_section("Das penalidades", "9", level=SectionLevel.CHAPTER, page=3)], 1)
        result = await arena.add_batch([_section("Multa", "9.1", parent="9", level=SectionLevel.CLAUSE, page=4)], 2)

        parent_id = arena.sections[0]["id"]
        assert result.orphans == 0
        assert str(result.sections[0]["parent_id"]) == parent_id
        assert arena.section_ids_by_page() == {3: [parent_id], 4: [arena.sections[1]["id"]]}

    @pytest.mark.asyncio
    async def test_orphan_is_never_reparented(self, arena):
        await arena.add_batch([_section("Item", "3.1.1", parent="3.1", level=SectionLevel.ITEM)], 1)
        await arena.add_batch([_section("Cláusula", "3.1", level=SectionLevel.CLAUSE)], 2)

        orphan = next(s for s in arena._rows if s["number"] == "3.1.1")
        assert orphan["parent_id"] is None

    @pytest.mark.asyncio
    async def test_empty_batch_writes_nothing(self, arena, section_repo):
        result = await arena.add_batch([], 1)

        assert result.sections == []
        section_repo.create_many.assert_not_awaited()


def test_order_by_level_is_stable():
    sections = [
        _section("b", level=SectionLevel.CLAUSE),
        _section("a", level=SectionLevel.CHAPTER),
        _section("c", level=SectionLevel.CLAUSE),
    ]

    assert [s.title for s in order_by_level(sections)] == ["a", "b", "c"]
