"""
Shared pydantic configuration for billing schemas.

Records built from ORM rows inherit BaseResponseSchema; request payloads inherit
one of the input bases.
"""

from pydantic import BaseModel, ConfigDict


class BaseResponseSchema(BaseModel):
    """
    Read side: validated straight from SQLAlchemy rows.

        class QuotationRecord(BaseResponseSchema):
            quotation_number: str
    """
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class _InputSchema(BaseModel):
    # Derived values sent by the admin UI (amount, totals) are dropped here;
    # the services recompute them
    model_config = ConfigDict(extra='ignore', str_strip_whitespace=True)


class BaseCreateSchema(_InputSchema):
    """Payload that creates something; required fields are enforced."""


class BaseUpdateSchema(_InputSchema):
    """Partial update; every field optional, unset fields are left alone."""
