from fastapi import APIRouter, Depends

from jewelbill.api.responses import service_error_response
from jewelbill.dependencies.services import get_invoice_service, get_request_context
from jewelbill.schemas.invoice import CreateInvoiceRequest, CreateInvoiceResponse
from jewelbill.services import InvoiceService
from jewelbill.services.exceptions import ServiceError
from jewelbill.services.invoice import RequestContext

router = APIRouter()


@router.post("", response_model=CreateInvoiceResponse, status_code=201)
async def create_invoice(
    req: CreateInvoiceRequest,
    context: RequestContext = Depends(get_request_context),
    service: InvoiceService = Depends(get_invoice_service),
):
    try:
        return await service.create(req, context)
    except ServiceError as exc:
        return service_error_response(exc)
