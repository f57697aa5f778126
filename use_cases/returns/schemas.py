"""
Request bodies for the returns API.

Fields are optional at this layer so that missing values reach the domain
validators and come back as a single invalid_request message. Wrong JSON
types are still rejected here (and rendered as invalid_request too).
"""

from datetime import date
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ApiModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class ReturnSubmission(ApiModel):
    order_item_id: Optional[int] = Field(default=None, alias="orderItemId")
    reason_text: Optional[str] = Field(default=None, alias="reasonText")
    category_hint: Optional[str] = Field(default=None, alias="categoryHint")
    photo_url: Optional[str] = Field(default=None, alias="photoUrl")


class GenerateInsightRequest(ApiModel):
    threshold: Optional[int] = None


class ActionItemCreate(ApiModel):
    description: Optional[str] = None
    priority: Optional[str] = None
    estimated_impact_cents: Optional[int] = Field(default=None, alias="estimatedImpactCents")


class ActionItemPatch(ApiModel):
    """Only the fields present in the request body are applied."""
    status: Optional[str] = None
    assigned_to: Optional[str] = Field(default=None, alias="assignedTo")
    due_date: Optional[date] = Field(default=None, alias="dueDate")

    @field_validator("due_date", mode="before")
    @classmethod
    def blank_due_date(cls, value: Any) -> Any:
        return None if value == "" else value

    def to_patch(self) -> dict:
        """Repository patch holding only the fields that were sent."""
        return {name: getattr(self, name) for name in self.model_fields_set}
