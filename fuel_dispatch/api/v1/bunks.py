from typing import List

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger
from sqlalchemy.orm import Session

from fuel_dispatch.api.dependencies import get_actor, get_request_service, get_session
from fuel_dispatch.core.exceptions import DispatchError, to_http_exception
from fuel_dispatch.schemas import (
    Actor,
    InventoryResponse,
    InventoryUpdateRequest,
    RequestData,
)
from fuel_dispatch.services.requests import RequestService

router = APIRouter()


@router.get("/bunks/{bunk_id}/requests/pending", response_model=List[RequestData])
def list_pending_near_bunk(
    bunk_id: str,
    actor: Actor = Depends(get_actor),
    request_service: RequestService = Depends(get_request_service),
):
    try:
        return list(request_service.list_pending_near_bunk(actor, bunk_id))
    except DispatchError as e:
        raise to_http_exception(e)


@router.get("/bunks/{bunk_id}/inventory", response_model=InventoryResponse)
def get_inventory(
    bunk_id: str,
    actor: Actor = Depends(get_actor),
    request_service: RequestService = Depends(get_request_service),
):
    try:
        stock = request_service.get_inventory(actor, bunk_id)
        return InventoryResponse(bunk_id=bunk_id, stock=stock)
    except DispatchError as e:
        raise to_http_exception(e)


@router.put("/bunks/{bunk_id}/inventory", response_model=InventoryResponse)
def update_inventory(
    bunk_id: str,
    request: InventoryUpdateRequest,
    actor: Actor = Depends(get_actor),
    request_service: RequestService = Depends(get_request_service),
    session: Session = Depends(get_session),
):
    try:
        stock = request_service.set_inventory(actor, bunk_id, request.stock)
        session.commit()
        return InventoryResponse(bunk_id=bunk_id, stock=stock)
    except DispatchError as e:
        session.rollback()
        raise to_http_exception(e)
    except Exception as e:
        session.rollback()
        logger.exception(f"Error updating inventory of bunk {bunk_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))
