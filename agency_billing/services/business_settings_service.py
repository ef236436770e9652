"""Business settings: the single row describing the issuing company."""
import logging
from typing import Any, Mapping, Union

from agency_billing.schemas.billing import BusinessSettingsRecord, BusinessSettingsUpdate
from agency_billing.services.billing_document_service import supplied_fields
from agency_billing.services.billing_store import BillingStore
from agency_billing.services.validation import parse_payload


logger = logging.getLogger(__name__)


class BusinessSettingsService:
    """Read and upsert the business settings singleton."""

    def __init__(self, store: BillingStore):
        self.store = store

    async def get(self) -> BusinessSettingsRecord:
        """Stored settings, or defaults when nothing has been saved yet."""
        self.store.require_admin()
        return await self.store.get_business_settings()

    async def upsert(
        self,
        changes: Union[BusinessSettingsUpdate, Mapping[str, Any]],
    ) -> BusinessSettingsRecord:
        """Save the supplied fields; concurrent saves are last-write-wins."""
        self.store.require_admin()
        data = parse_payload(BusinessSettingsUpdate, changes)
        values = supplied_fields(data)

        async with self.store.transaction():
            record = await self.store.upsert_business_settings(values)

        logger.info(f"Business settings saved ({', '.join(sorted(values)) or 'no changes'})")
        return record
