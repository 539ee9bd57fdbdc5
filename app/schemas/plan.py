"""
Gym Membership Service - Plan Catalog Schemas

Pydantic schemas for the membership plan catalog. Prices are integer minor
units (cents); formatting is the client's job.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


# ===========================================
# REQUEST SCHEMAS
# ===========================================

class PlanCreateRequest(BaseModel):
    """Schema for adding a plan to the catalog."""
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=2000)
    price_minor_units: int = Field(..., ge=0, description="Price in cents")
    duration_months: int = Field(..., ge=0, le=120, description="0 = single-day pass")
    features: List[str] = Field(default_factory=list)

    # Entitlements
    max_classes_per_month: int = Field(-1, ge=-1, description="-1 = unlimited")
    includes_personal_training: bool = False
    includes_nutrition_consultation: bool = False


# ===========================================
# RESPONSE SCHEMAS
# ===========================================

class PlanResponse(BaseModel):
    """Schema for a catalog plan."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    price_minor_units: int
    duration_months: int
    duration_days: int
    features: List[str]
    max_classes_per_month: int
    includes_personal_training: bool
    includes_nutrition_consultation: bool
    is_retired: bool
    retired_at: Optional[datetime] = None


class PlanSummary(BaseModel):
    """Compact plan shown inside a membership."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    price_minor_units: int
    duration_months: int


class PlanListResponse(BaseModel):
    """Schema for the catalog listing."""
    plans: List[PlanResponse]
    total: int
