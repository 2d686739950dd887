"""
Document grouping ledger.

Pages (or whole files without page records) are assigned into billing
groups. One group is one certification line. The ledger keeps the
coverage invariant: every item is either in exactly one active group or
unassigned, and no split or combine can lose or duplicate an item.

Removing an assignment that was never saved deletes it outright;
removing a saved one marks it deleted so the history is kept.
"""

import uuid
from decimal import Decimal
from typing import Callable, Iterable, Optional

import structlog

from quoteflow.config import PricingSettings, default_pricing_settings
from quoteflow.errors import InvalidInput, NotFound
from quoteflow.models.enums import ItemKind
from quoteflow.pricing.billable import complexity_multiplier, page_billable
from quoteflow.pricing.calculator import certification_line_total, document_line_total
from quoteflow.pricing.money import ZERO, ceil_to_tenth
from quoteflow.schemas.grouping import (
    DocumentGroup,
    GroupAssignment,
    GroupSummary,
    LedgerItem,
    LedgerState,
)
from quoteflow.schemas.pricing import CertificationLine, DocumentLine
from quoteflow.schemas.quotes import QuoteDocument

logger = structlog.get_logger(__name__)


def items_from_documents(documents: Iterable[QuoteDocument]) -> list[LedgerItem]:
    """One item per page record, or one per file when a file has no pages."""
    items = []
    for doc in documents:
        if doc.pages:
            for page in sorted(doc.pages, key=lambda p: p.page_number):
                items.append(LedgerItem(
                    item_id=page.page_id,
                    kind=ItemKind.PAGE,
                    file_id=doc.file_id,
                    page_number=page.page_number,
                    word_count=page.word_count,
                ))
        else:
            items.append(LedgerItem(
                item_id=doc.file_id,
                kind=ItemKind.FILE,
                file_id=doc.file_id,
                word_count=doc.word_count,
            ))
    return items


class DocumentLedger:
    """In-memory ledger for one quote."""

    def __init__(self, state: LedgerState, id_factory: Optional[Callable[[], str]] = None):
        self.quote_id = state.quote_id
        self._new_id = id_factory or (lambda: str(uuid.uuid4()))
        self.items: dict[str, LedgerItem] = {i.item_id: i for i in state.items}
        self.groups: dict[str, DocumentGroup] = {g.group_id: g for g in state.groups}
        self.assignments: dict[str, GroupAssignment] = {a.assignment_id: a for a in state.assignments}
        self.verify()

    # ── Queries ──────────────────────────────────────────────
    def active_groups(self) -> list[DocumentGroup]:
        return sorted(
            (g for g in self.groups.values() if not g.is_deleted),
            key=lambda g: (g.sort_order, g.label),
        )

    def active_assignments(self) -> list[GroupAssignment]:
        active = []
        for assignment in self.assignments.values():
            group = self.groups.get(assignment.group_id)
            if not assignment.is_deleted and group is not None and not group.is_deleted:
                active.append(assignment)
        return active

    def assignment_for(self, item_id: str) -> Optional[GroupAssignment]:
        for assignment in self.active_assignments():
            if assignment.item_id == item_id:
                return assignment
        return None

    def group_items(self, group_id: str) -> list[LedgerItem]:
        assignments = sorted(
            (a for a in self.active_assignments() if a.group_id == group_id),
            key=lambda a: a.sequence,
        )
        return [self.items[a.item_id] for a in assignments]

    def unassigned_items(self) -> list[LedgerItem]:
        assigned = {a.item_id for a in self.active_assignments()}
        return [i for i in self.items.values() if i.item_id not in assigned]

    def verify(self) -> None:
        """Raise if any item is assigned twice or an assignment points nowhere."""
        seen: set[str] = set()
        for assignment in self.active_assignments():
            if assignment.item_id not in self.items:
                raise InvalidInput(
                    "assignment references an unknown item",
                    assignment_id=assignment.assignment_id,
                    item_id=assignment.item_id,
                )
            if assignment.item_id in seen:
                raise InvalidInput("item is assigned to more than one group", item_id=assignment.item_id)
            seen.add(assignment.item_id)
        covered = seen | {i.item_id for i in self.unassigned_items()}
        if covered != set(self.items):
            raise InvalidInput("ledger coverage does not match the quote's items", quote_id=self.quote_id)

    # ── Items ────────────────────────────────────────────────
    def sync_items(self, items: Iterable[LedgerItem]) -> None:
        """Add newly uploaded items and refresh word counts of known ones."""
        for item in items:
            self.items[item.item_id] = item

    # ── Groups ───────────────────────────────────────────────
    def _group(self, group_id: str) -> DocumentGroup:
        group = self.groups.get(group_id)
        if group is None or group.is_deleted:
            raise NotFound("document group not found", group_id=group_id)
        return group

    def create_group(
        self,
        label: str,
        document_type: Optional[str] = None,
        complexity: Optional[str] = None,
        certification_code: Optional[str] = None,
        certification_price: Decimal = ZERO,
    ) -> DocumentGroup:
        if not label or not label.strip():
            raise InvalidInput("group label is required")
        if certification_price < 0:
            raise InvalidInput("certification price cannot be negative", certification_price=certification_price)
        group = DocumentGroup(
            group_id=self._new_id(),
            quote_id=self.quote_id,
            label=label.strip(),
            document_type=document_type,
            complexity=complexity,
            certification_code=certification_code,
            certification_price=certification_price,
            sort_order=len(self.groups),
        )
        self.groups[group.group_id] = group
        logger.info("group_created", quote_id=self.quote_id, group_id=group.group_id, label=group.label)
        return group

    def delete_group(self, group_id: str) -> list[LedgerItem]:
        """Delete a group. Its items become unassigned and are returned."""
        group = self._group(group_id)
        released = self.group_items(group_id)
        for assignment in [a for a in self.active_assignments() if a.group_id == group_id]:
            self._drop_assignment(assignment)
        if group.persisted:
            self.groups[group_id] = group.model_copy(update={"is_deleted": True})
        else:
            del self.groups[group_id]
        self.verify()
        logger.info("group_deleted", quote_id=self.quote_id, group_id=group_id, released=len(released))
        return released

    # ── Assignments ──────────────────────────────────────────
    def _next_sequence(self, group_id: str) -> int:
        sequences = [a.sequence for a in self.active_assignments() if a.group_id == group_id]
        return max(sequences, default=-1) + 1

    def _drop_assignment(self, assignment: GroupAssignment) -> None:
        if assignment.persisted:
            self.assignments[assignment.assignment_id] = assignment.model_copy(update={"is_deleted": True})
        else:
            del self.assignments[assignment.assignment_id]

    def assign_item(self, group_id: str, item_id: str) -> GroupAssignment:
        """Assign an unassigned item. Assigned items must be removed or moved explicitly."""
        self._group(group_id)
        if item_id not in self.items:
            raise NotFound("item not found on this quote", item_id=item_id)
        current = self.assignment_for(item_id)
        if current is not None:
            raise InvalidInput(
                "item is already assigned to a group",
                item_id=item_id,
                group_id=current.group_id,
            )
        assignment = GroupAssignment(
            assignment_id=self._new_id(),
            group_id=group_id,
            item_id=item_id,
            sequence=self._next_sequence(group_id),
        )
        self.assignments[assignment.assignment_id] = assignment
        self.verify()
        return assignment

    def remove_item(self, assignment_id: str) -> LedgerItem:
        """Unassign an item. The item stays on the quote as unassigned."""
        assignment = self.assignments.get(assignment_id)
        if assignment is None or assignment.is_deleted:
            raise NotFound("assignment not found", assignment_id=assignment_id)
        self._drop_assignment(assignment)
        self.verify()
        return self.items[assignment.item_id]

    def _validate_selection(self, item_ids: list[str]) -> None:
        if not item_ids:
            raise InvalidInput("no pages selected")
        if len(set(item_ids)) != len(item_ids):
            raise InvalidInput("duplicate pages selected")
        missing = [i for i in item_ids if i not in self.items]
        if missing:
            raise NotFound("items not found on this quote", item_ids=",".join(missing))

    def _move_items(self, item_ids: list[str], group_id: str) -> list[GroupAssignment]:
        self._validate_selection(item_ids)
        moved = []
        for item_id in item_ids:
            current = self.assignment_for(item_id)
            if current is not None:
                if current.group_id == group_id:
                    moved.append(current)
                    continue
                self._drop_assignment(current)
            assignment = GroupAssignment(
                assignment_id=self._new_id(),
                group_id=group_id,
                item_id=item_id,
                sequence=self._next_sequence(group_id),
            )
            self.assignments[assignment.assignment_id] = assignment
            moved.append(assignment)
        self.verify()
        return moved

    def split_pages(self, item_ids: list[str], new_group_label: str, **group_fields) -> DocumentGroup:
        """Move the given pages out of wherever they are into a new group."""
        self._validate_selection(list(item_ids))
        group = self.create_group(new_group_label, **group_fields)
        self._move_items(list(item_ids), group.group_id)
        logger.info("pages_split", quote_id=self.quote_id, group_id=group.group_id, pages=len(item_ids))
        return group

    def combine_pages(self, item_ids: list[str], target_group_id: str) -> list[GroupAssignment]:
        """Move the given pages into an existing group."""
        self._group(target_group_id)
        moved = self._move_items(list(item_ids), target_group_id)
        logger.info("pages_combined", quote_id=self.quote_id, group_id=target_group_id, pages=len(item_ids))
        return moved

    # ── Pricing ──────────────────────────────────────────────
    def group_billable_pages(self, group: DocumentGroup, pricing: PricingSettings) -> Decimal:
        items = self.group_items(group.group_id)
        if not items:
            return Decimal("0.0")
        multiplier = complexity_multiplier(group.complexity, pricing)
        total = sum(
            (page_billable(i.word_count, multiplier, pricing.words_per_page) for i in items),
            Decimal("0.0"),
        )
        return max(ceil_to_tenth(total), pricing.min_billable_pages)

    def pricing_lines(
        self,
        language_multiplier: Decimal,
        pricing: Optional[PricingSettings] = None,
    ) -> tuple[list[DocumentLine], list[CertificationLine]]:
        """Translation and certification lines for every non-empty active group."""
        pricing = pricing or default_pricing_settings()
        documents, certifications = [], []
        for group in self.active_groups():
            pages = self.group_billable_pages(group, pricing)
            if pages == 0:
                continue
            documents.append(DocumentLine(
                document_id=group.group_id,
                billable_pages=pages,
                language_multiplier=language_multiplier,
            ))
            certifications.append(CertificationLine(
                line_id=group.group_id,
                certification_code=group.certification_code or "",
                quantity=1,
                unit_price=group.certification_price,
            ))
        return documents, certifications

    def summaries(
        self,
        language_multiplier: Decimal,
        base_rate: Optional[Decimal] = None,
        pricing: Optional[PricingSettings] = None,
    ) -> list[GroupSummary]:
        pricing = pricing or default_pricing_settings()
        rate = base_rate if base_rate is not None else pricing.base_rate
        result = []
        for group in self.active_groups():
            pages = self.group_billable_pages(group, pricing)
            cert = certification_line_total(CertificationLine(quantity=1, unit_price=group.certification_price))
            result.append(GroupSummary(
                group_id=group.group_id,
                label=group.label,
                item_ids=[i.item_id for i in self.group_items(group.group_id)],
                billable_pages=pages,
                certification_total=cert,
                line_total=document_line_total(pages, rate, language_multiplier),
            ))
        return result

    def to_state(self) -> LedgerState:
        return LedgerState(
            quote_id=self.quote_id,
            items=list(self.items.values()),
            groups=list(self.groups.values()),
            assignments=list(self.assignments.values()),
        )
