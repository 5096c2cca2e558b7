from fastapi import APIRouter, Depends

from jewelbill.dependencies.services import get_current_user, get_item_description_service
from jewelbill.schemas.item_description import ItemDescriptionRequest, ItemDescriptionResponse
from jewelbill.services import ItemDescriptionService

router = APIRouter()


@router.post("/invoice-item-description", response_model=ItemDescriptionResponse)
async def generate_item_description(
    req: ItemDescriptionRequest,
    user_id: str = Depends(get_current_user),
    service: ItemDescriptionService = Depends(get_item_description_service),
):
    return await service.generate(req)
