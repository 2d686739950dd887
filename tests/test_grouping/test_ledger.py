"""
Tests for the document grouping ledger.
"""

from decimal import Decimal
from itertools import count

import pytest

from quoteflow.config import default_pricing_settings
from quoteflow.errors import InvalidInput, NotFound
from quoteflow.grouping.ledger import DocumentLedger, items_from_documents
from quoteflow.models.enums import ItemKind
from quoteflow.schemas.grouping import DocumentGroup, GroupAssignment, LedgerItem, LedgerState
from quoteflow.schemas.quotes import QuoteDocument, QuotePage


def _ids():
    counter = count(1)
    return lambda: f"id{next(counter)}"


def _items(*word_counts) -> list[LedgerItem]:
    return [
        LedgerItem(item_id=f"p{n}", kind=ItemKind.PAGE, file_id="f1", page_number=n, word_count=words)
        for n, words in enumerate(word_counts, start=1)
    ]


@pytest.fixture
def ledger():
    """Four pages of 225 words each."""
    return DocumentLedger(LedgerState(quote_id="q1", items=_items(225, 225, 225, 225)), _ids())


def _coverage(ledger: DocumentLedger) -> list[str]:
    assigned = [a.item_id for a in ledger.active_assignments()]
    unassigned = [i.item_id for i in ledger.unassigned_items()]
    return sorted(assigned + unassigned)


class TestItemsFromDocuments:

    def test_pages_become_items(self):
        doc = QuoteDocument(file_id="f1", quote_id="q1", filename="a.pdf", pages=[
            QuotePage(page_id="pg2", file_id="f1", page_number=2, word_count=20),
            QuotePage(page_id="pg1", file_id="f1", page_number=1, word_count=10),
        ])
        items = items_from_documents([doc])
        assert [i.item_id for i in items] == ["pg1", "pg2"]
        assert all(i.kind == ItemKind.PAGE for i in items)

    def test_file_without_pages_is_one_item(self):
        doc = QuoteDocument(file_id="f2", quote_id="q1", filename="b.pdf", word_count=300)
        items = items_from_documents([doc])
        assert len(items) == 1
        assert items[0].kind == ItemKind.FILE
        assert items[0].word_count == 300


class TestGroups:

    def test_create_group(self, ledger):
        group = ledger.create_group("Birth certificate", certification_price=Decimal("30.00"))
        assert group.group_id == "id1"
        assert ledger.active_groups() == [group]

    def test_label_required(self, ledger):
        with pytest.raises(InvalidInput):
            ledger.create_group("  ")

    def test_negative_certification_price_rejected(self, ledger):
        with pytest.raises(InvalidInput):
            ledger.create_group("A", certification_price=Decimal("-1"))

    def test_delete_group_releases_items(self, ledger):
        group = ledger.create_group("A")
        ledger.assign_item(group.group_id, "p1")
        ledger.assign_item(group.group_id, "p2")
        released = ledger.delete_group(group.group_id)
        assert [i.item_id for i in released] == ["p1", "p2"]
        assert len(ledger.unassigned_items()) == 4
        assert ledger.active_groups() == []

    def test_deleting_persisted_group_keeps_history(self):
        state = LedgerState(
            quote_id="q1",
            items=_items(100),
            groups=[DocumentGroup(group_id="g1", quote_id="q1", label="A", persisted=True)],
            assignments=[GroupAssignment(assignment_id="a1", group_id="g1", item_id="p1", persisted=True)],
        )
        ledger = DocumentLedger(state, _ids())
        ledger.delete_group("g1")
        assert ledger.groups["g1"].is_deleted
        assert ledger.assignments["a1"].is_deleted
        assert [i.item_id for i in ledger.unassigned_items()] == ["p1"]

    def test_unknown_group(self, ledger):
        with pytest.raises(NotFound):
            ledger.delete_group("nope")


class TestAssignments:

    def test_assign_and_remove(self, ledger):
        group = ledger.create_group("A")
        assignment = ledger.assign_item(group.group_id, "p1")
        assert ledger.assignment_for("p1") == assignment
        item = ledger.remove_item(assignment.assignment_id)
        assert item.item_id == "p1"
        assert ledger.assignment_for("p1") is None
        assert _coverage(ledger) == ["p1", "p2", "p3", "p4"]

    def test_item_cannot_be_in_two_groups(self, ledger):
        a = ledger.create_group("A")
        b = ledger.create_group("B")
        ledger.assign_item(a.group_id, "p1")
        with pytest.raises(InvalidInput):
            ledger.assign_item(b.group_id, "p1")

    def test_unknown_item(self, ledger):
        group = ledger.create_group("A")
        with pytest.raises(NotFound):
            ledger.assign_item(group.group_id, "p99")

    def test_sequences_increase(self, ledger):
        group = ledger.create_group("A")
        first = ledger.assign_item(group.group_id, "p3")
        second = ledger.assign_item(group.group_id, "p1")
        assert (first.sequence, second.sequence) == (0, 1)
        assert [i.item_id for i in ledger.group_items(group.group_id)] == ["p3", "p1"]

    def test_corrupt_state_is_rejected(self):
        state = LedgerState(
            quote_id="q1",
            items=_items(100),
            groups=[
                DocumentGroup(group_id="g1", quote_id="q1", label="A"),
                DocumentGroup(group_id="g2", quote_id="q1", label="B"),
            ],
            assignments=[
                GroupAssignment(assignment_id="a1", group_id="g1", item_id="p1"),
                GroupAssignment(assignment_id="a2", group_id="g2", item_id="p1"),
            ],
        )
        with pytest.raises(InvalidInput):
            DocumentLedger(state)


class TestSplitAndCombine:

    def test_split_moves_pages_into_new_group(self, ledger):
        original = ledger.create_group("Passport")
        for item_id in ("p1", "p2", "p3"):
            ledger.assign_item(original.group_id, item_id)

        new = ledger.split_pages(["p2", "p3"], "Visa", certification_price=Decimal("25"))

        assert [i.item_id for i in ledger.group_items(original.group_id)] == ["p1"]
        assert [i.item_id for i in ledger.group_items(new.group_id)] == ["p2", "p3"]
        assert new.certification_price == Decimal("25")
        assert _coverage(ledger) == ["p1", "p2", "p3", "p4"]

    def test_split_rejects_empty_selection(self, ledger):
        with pytest.raises(InvalidInput):
            ledger.split_pages([], "New")
        assert ledger.active_groups() == []

    def test_split_rejects_duplicates(self, ledger):
        with pytest.raises(InvalidInput):
            ledger.split_pages(["p1", "p1"], "New")

    def test_split_unknown_page_creates_nothing(self, ledger):
        with pytest.raises(NotFound):
            ledger.split_pages(["p1", "p99"], "New")
        assert ledger.active_groups() == []

    def test_combine_into_existing_group(self, ledger):
        a = ledger.create_group("A")
        b = ledger.create_group("B")
        ledger.assign_item(a.group_id, "p1")
        ledger.assign_item(b.group_id, "p2")

        ledger.combine_pages(["p2", "p3"], a.group_id)

        assert [i.item_id for i in ledger.group_items(a.group_id)] == ["p1", "p2", "p3"]
        assert ledger.group_items(b.group_id) == []
        assert _coverage(ledger) == ["p1", "p2", "p3", "p4"]

    def test_combine_into_same_group_is_stable(self, ledger):
        a = ledger.create_group("A")
        assignment = ledger.assign_item(a.group_id, "p1")
        moved = ledger.combine_pages(["p1"], a.group_id)
        assert moved == [assignment]


class TestGroupPricing:

    def test_group_billable_pages_sum_pages(self, ledger):
        group = ledger.create_group("A", complexity="easy")
        ledger.assign_item(group.group_id, "p1")
        ledger.assign_item(group.group_id, "p2")
        assert ledger.group_billable_pages(group, default_pricing_settings()) == Decimal("2.0")

    def test_small_group_gets_minimum(self):
        ledger = DocumentLedger(LedgerState(quote_id="q1", items=_items(20)), _ids())
        group = ledger.create_group("A")
        ledger.assign_item(group.group_id, "p1")
        assert ledger.group_billable_pages(group, default_pricing_settings()) == Decimal("1.0")

    def test_pricing_lines_skip_empty_groups(self, ledger):
        full = ledger.create_group("A", complexity="easy", certification_price=Decimal("30"))
        ledger.create_group("Empty")
        ledger.assign_item(full.group_id, "p1")
        documents, certifications = ledger.pricing_lines(Decimal("1.0"))
        assert [d.document_id for d in documents] == [full.group_id]
        assert documents[0].billable_pages == Decimal("1.0")
        assert certifications[0].unit_price == Decimal("30")

    def test_summaries(self, ledger):
        group = ledger.create_group("A", complexity="medium", certification_price=Decimal("30"))
        for item_id in ("p1", "p2"):
            ledger.assign_item(group.group_id, item_id)
        summary = ledger.summaries(Decimal("1.0"))[0]
        # each page 225 * 1.15 / 225 = 1.15 -> 1.2, so 2.4 pages -> 156.00 -> 157.50
        assert summary.billable_pages == Decimal("2.4")
        assert summary.line_total == Decimal("157.50")
        assert summary.certification_total == Decimal("30.00")
        assert summary.item_ids == ["p1", "p2"]

    def test_round_trip_state(self, ledger):
        group = ledger.create_group("A")
        ledger.assign_item(group.group_id, "p1")
        rebuilt = DocumentLedger(ledger.to_state())
        assert [i.item_id for i in rebuilt.group_items(group.group_id)] == ["p1"]