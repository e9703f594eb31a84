from fastapi import APIRouter, Depends, HTTPException
from loguru import logger

from fuel_dispatch.api.dependencies import get_request_service, get_settings
from fuel_dispatch.config.settings import Settings
from fuel_dispatch.core.exceptions import DispatchError, to_http_exception
from fuel_dispatch.schemas import QuoteRequest, QuoteResponse
from fuel_dispatch.services.pricing import normalize_quantity, normalize_variant
from fuel_dispatch.services.requests import RequestService

router = APIRouter()


@router.post("/quotes", response_model=QuoteResponse)
def price_quote(
    request: QuoteRequest,
    request_service: RequestService = Depends(get_request_service),
    settings: Settings = Depends(get_settings),
):
    try:
        bill = request_service.price_quote(
            request.product_kind, request.quantity, request.variant
        )
        return QuoteResponse(
            product_kind=request.product_kind,
            quantity=normalize_quantity(request.product_kind, request.quantity),
            variant=normalize_variant(request.product_kind, request.variant),
            bill=bill,
            currency=settings.currency,
        )
    except DispatchError as e:
        raise to_http_exception(e)
    except Exception as e:
        logger.exception(f"Error computing quote: {e}")
        raise HTTPException(status_code=500, detail=str(e))
