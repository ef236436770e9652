"""API endpoints for the business settings singleton."""
from fastapi import APIRouter

from agency_billing.api.deps import BusinessSettingsDep
from agency_billing.schemas.billing import BusinessSettingsRecord, BusinessSettingsUpdate

router = APIRouter()


@router.get("", response_model=BusinessSettingsRecord)
async def get_business_settings(service: BusinessSettingsDep):
    """Current settings, or defaults when none have been saved."""
    return await service.get()


@router.put("", response_model=BusinessSettingsRecord)
async def save_business_settings(settings_in: BusinessSettingsUpdate, service: BusinessSettingsDep):
    """Create or update the settings."""
    return await service.upsert(settings_in)
