from uuid import UUID

from fastapi import APIRouter, Depends

from jewelbill.api.responses import service_error_response
from jewelbill.dependencies.services import get_current_user, get_loyalty_settings_service
from jewelbill.schemas.loyalty import LoyaltySettings, LoyaltySettingsUpdate
from jewelbill.services import LoyaltySettingsService
from jewelbill.services.exceptions import ServiceError

router = APIRouter()


@router.get("/{shop_id}/loyalty-settings", response_model=LoyaltySettings)
async def get_loyalty_settings(
    shop_id: UUID,
    user_id: str = Depends(get_current_user),
    service: LoyaltySettingsService = Depends(get_loyalty_settings_service),
):
    try:
        return await service.get(str(shop_id), user_id)
    except ServiceError as exc:
        return service_error_response(exc)


@router.put("/{shop_id}/loyalty-settings", response_model=LoyaltySettings)
async def update_loyalty_settings(
    shop_id: UUID,
    req: LoyaltySettingsUpdate,
    user_id: str = Depends(get_current_user),
    service: LoyaltySettingsService = Depends(get_loyalty_settings_service),
):
    try:
        return await service.update(str(shop_id), user_id, req)
    except ServiceError as exc:
        return service_error_response(exc)
