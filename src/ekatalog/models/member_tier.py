# src/ekatalog/models/member_tier.py

from typing import Optional

from pydantic import BaseModel, Field


class MemberTier(BaseModel):
    """
    Loyalty tier configuration. Memberships reference a tier by `name` only;
    nothing here takes part in the approval lifecycle.
    """

    id: Optional[int] = None
    name: str
    min_points: int = Field(default=0, ge=0)
    min_points_maintain: Optional[int] = Field(default=None, ge=0)
    discount_rate: float = Field(default=0.0, ge=0.0, le=1.0)
    inactivity_penalty_points: int = Field(default=0, ge=0)
    inactivity_period_days: int = Field(default=0, ge=0)
    penalty_frequency_days: int = Field(default=0, ge=0)

    class Config:
        extra = "allow"
