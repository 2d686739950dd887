"""
/api/v1/quotes/{quote_id}/groups endpoints.
Document grouping ledger. Each change reprices the quote.
"""

from fastapi import APIRouter, Depends

from quoteflow.api.quotes import recalculation_response
from quoteflow.dependencies import get_grouping_service, get_staff, verify_api_key
from quoteflow.grouping.service import GroupingService
from quoteflow.schemas.api import (
    AssignItemRequest,
    CombineRequest,
    CreateGroupRequest,
    GroupsResponse,
    RecalculationResponse,
    SplitRequest,
)
from quoteflow.schemas.grouping import DocumentGroup
from quoteflow.schemas.reviews import StaffContext

router = APIRouter(prefix="/api/v1/quotes", tags=["groups"], dependencies=[Depends(verify_api_key)])


@router.get("/{quote_id}/groups", response_model=GroupsResponse)
async def list_groups(quote_id: str, service: GroupingService = Depends(get_grouping_service)):
    """Active groups with billable pages, and the items not yet grouped."""
    return GroupsResponse(**await service.summaries(quote_id))


@router.post("/{quote_id}/groups", response_model=DocumentGroup, status_code=201)
async def create_group(
    quote_id: str,
    body: CreateGroupRequest,
    staff: StaffContext = Depends(get_staff),
    service: GroupingService = Depends(get_grouping_service),
):
    return await service.create_group(quote_id, staff, **body.model_dump())


@router.delete("/{quote_id}/groups/{group_id}", response_model=RecalculationResponse)
async def delete_group(
    quote_id: str,
    group_id: str,
    staff: StaffContext = Depends(get_staff),
    service: GroupingService = Depends(get_grouping_service),
):
    return recalculation_response(quote_id, await service.delete_group(quote_id, staff, group_id))


@router.post("/{quote_id}/groups/split", response_model=DocumentGroup, status_code=201)
async def split_pages(
    quote_id: str,
    body: SplitRequest,
    staff: StaffContext = Depends(get_staff),
    service: GroupingService = Depends(get_grouping_service),
):
    """Move pages into a new group."""
    fields = body.model_dump(exclude={"item_ids", "label"})
    return await service.split_pages(quote_id, staff, body.item_ids, body.label, **fields)


@router.post("/{quote_id}/groups/{group_id}/items", response_model=RecalculationResponse)
async def assign_item(
    quote_id: str,
    group_id: str,
    body: AssignItemRequest,
    staff: StaffContext = Depends(get_staff),
    service: GroupingService = Depends(get_grouping_service),
):
    return recalculation_response(quote_id, await service.assign_item(quote_id, staff, group_id, body.item_id))


@router.post("/{quote_id}/groups/{group_id}/combine", response_model=RecalculationResponse)
async def combine_pages(
    quote_id: str,
    group_id: str,
    body: CombineRequest,
    staff: StaffContext = Depends(get_staff),
    service: GroupingService = Depends(get_grouping_service),
):
    """Move pages into an existing group."""
    return recalculation_response(quote_id, await service.combine_pages(quote_id, staff, body.item_ids, group_id))


@router.delete("/{quote_id}/assignments/{assignment_id}", response_model=RecalculationResponse)
async def remove_item(
    quote_id: str,
    assignment_id: str,
    staff: StaffContext = Depends(get_staff),
    service: GroupingService = Depends(get_grouping_service),
):
    return recalculation_response(quote_id, await service.remove_item(quote_id, staff, assignment_id))
