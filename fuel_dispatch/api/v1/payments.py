from fastapi import APIRouter, Depends, HTTPException
from loguru import logger
from sqlalchemy.orm import Session

from fuel_dispatch.api.dependencies import (
    get_actor,
    get_gateway_client,
    get_request_service,
    get_session,
)
from fuel_dispatch.clients.gateway import PaymentGatewayClient
from fuel_dispatch.core.exceptions import DispatchError, to_http_exception
from fuel_dispatch.schemas import (
    Actor,
    ConfirmPaymentRequest,
    PaymentOrderResponse,
    QuoteRequest,
    RequestData,
)
from fuel_dispatch.services.requests import RequestService

router = APIRouter()


@router.post("/payments/orders", response_model=PaymentOrderResponse)
def initiate_payment(
    request: QuoteRequest,
    actor: Actor = Depends(get_actor),
    request_service: RequestService = Depends(get_request_service),
    gateway_client: PaymentGatewayClient = Depends(get_gateway_client),
    session: Session = Depends(get_session),
):
    try:
        order = request_service.initiate_payment(actor, request)
        session.commit()
        return PaymentOrderResponse(
            order_id=order.order_id,
            amount=order.bill.total,
            amount_minor=order.amount_minor,
            currency=order.currency,
            gateway_key_id=gateway_client.key_id,
            bill=order.bill,
        )
    except DispatchError as e:
        session.rollback()
        raise to_http_exception(e)
    except Exception as e:
        session.rollback()
        logger.exception(f"Error initiating payment: {e}")
        raise HTTPException(status_code=500, detail=str(e))


@router.post("/payments/confirm", response_model=RequestData, status_code=201)
def confirm_payment(
    request: ConfirmPaymentRequest,
    actor: Actor = Depends(get_actor),
    request_service: RequestService = Depends(get_request_service),
    session: Session = Depends(get_session),
):
    try:
        response = request_service.confirm_payment_and_create_request(
            actor,
            order_id=request.order_id,
            payment_id=request.payment_id,
            signature=request.signature,
            product_kind=request.product_kind,
            variant=request.variant,
            quantity=request.quantity,
            location=request.location,
        )
        session.commit()
        return response
    except DispatchError as e:
        session.rollback()
        raise to_http_exception(e)
    except Exception as e:
        session.rollback()
        logger.exception(f"Error confirming payment {request.order_id}: {e}")
        raise HTTPException(status_code=500, detail=str(e))
