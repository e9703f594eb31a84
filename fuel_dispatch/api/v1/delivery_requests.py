from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from loguru import logger
from sqlalchemy.orm import Session

from fuel_dispatch.api.dependencies import get_actor, get_request_service, get_session
from fuel_dispatch.core.exceptions import DispatchError, to_http_exception
from fuel_dispatch.schemas import (
    Actor,
    AdvanceStatusRequest,
    ApproveRequest,
    RequestData,
    RequestEventData,
    RequestStatus,
)
from fuel_dispatch.services.requests import RequestService

router = APIRouter()


# --- listings ---


@router.get("/requests", response_model=List[RequestData])
def list_all_requests(
    status: Optional[RequestStatus] = None,
    actor: Actor = Depends(get_actor),
    request_service: RequestService = Depends(get_request_service),
):
    try:
        return list(request_service.list_all(actor, status))
    except DispatchError as e:
        raise to_http_exception(e)


@router.get("/requests/claimable", response_model=List[RequestData])
def list_claimable_requests(
    actor: Actor = Depends(get_actor),
    request_service: RequestService = Depends(get_request_service),
):
    try:
        return list(request_service.list_claimable(actor))
    except DispatchError as e:
        raise to_http_exception(e)


@router.get("/customers/{customer_id}/requests", response_model=List[RequestData])
def list_customer_requests(
    customer_id: str,
    actor: Actor = Depends(get_actor),
    request_service: RequestService = Depends(get_request_service),
):
    try:
        return list(request_service.list_by_customer(actor, customer_id))
    except DispatchError as e:
        raise to_http_exception(e)


@router.get("/agents/{agent_id}/requests", response_model=List[RequestData])
def list_agent_requests(
    agent_id: str,
    actor: Actor = Depends(get_actor),
    request_service: RequestService = Depends(get_request_service),
):
    try:
        return list(request_service.list_by_agent(actor, agent_id))
    except DispatchError as e:
        raise to_http_exception(e)


# --- single request ---


@router.get("/requests/{request_id}", response_model=RequestData)
def get_request(
    request_id: str,
    actor: Actor = Depends(get_actor),
    request_service: RequestService = Depends(get_request_service),
):
    try:
        return request_service.get_request(actor, request_id)
    except DispatchError as e:
        raise to_http_exception(e)


@router.get("/requests/{request_id}/history", response_model=List[RequestEventData])
def get_request_history(
    request_id: str,
    actor: Actor = Depends(get_actor),
    request_service: RequestService = Depends(get_request_service),
):
    try:
        return request_service.history(actor, request_id)
    except DispatchError as e:
        raise to_http_exception(e)


@router.post("/requests/{request_id}/approve", response_model=RequestData)
def approve_request(
    request_id: str,
    request: Optional[ApproveRequest] = None,
    actor: Actor = Depends(get_actor),
    request_service: RequestService = Depends(get_request_service),
    session: Session = Depends(get_session),
):
    try:
        bunk_id = request.bunk_id if request else None
        response = request_service.approve(actor, request_id, bunk_id)
        session.commit()
        return response
    except DispatchError as e:
        session.rollback()
        raise to_http_exception(e)
    except Exception as e:
        session.rollback()
        logger.exception(f"Error approving request {request_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/requests/{request_id}/claim", response_model=RequestData)
def claim_request(
    request_id: str,
    actor: Actor = Depends(get_actor),
    request_service: RequestService = Depends(get_request_service),
    session: Session = Depends(get_session),
):
    try:
        response = request_service.claim(actor, request_id)
        session.commit()
        return response
    except DispatchError as e:
        session.rollback()
        raise to_http_exception(e)
    except Exception as e:
        session.rollback()
        logger.exception(f"Error claiming request {request_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/requests/{request_id}/status", response_model=RequestData)
def advance_request_status(
    request_id: str,
    request: AdvanceStatusRequest,
    actor: Actor = Depends(get_actor),
    request_service: RequestService = Depends(get_request_service),
    session: Session = Depends(get_session),
):
    try:
        response = request_service.advance_status(actor, request_id, request.status)
        session.commit()
        return response
    except DispatchError as e:
        session.rollback()
        raise to_http_exception(e)
    except Exception as e:
        session.rollback()
        logger.exception(f"Error updating status of request {request_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/requests/{request_id}/cancel", response_model=RequestData)
def cancel_request(
    request_id: str,
    actor: Actor = Depends(get_actor),
    request_service: RequestService = Depends(get_request_service),
    session: Session = Depends(get_session),
):
    try:
        response = request_service.cancel(actor, request_id)
        session.commit()
        return response
    except DispatchError as e:
        session.rollback()
        raise to_http_exception(e)
    except Exception as e:
        session.rollback()
        logger.exception(f"Error cancelling request {request_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))
