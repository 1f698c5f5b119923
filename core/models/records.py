"""
Alert Store Records — input models read from the external store.

Anomaly details are a tagged union keyed by the anomaly's own `type`:
each known anomaly type gets its own details model with explicit optional
fields, everything else falls back to GenericDetails. Unknown keys are
kept so nothing the detectors emit is lost.
"""

from datetime import datetime
from typing import Any, Dict, Literal, Optional, Type

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from utils.time_utils import ensure_utc

Severity = Literal["low", "medium", "high", "critical"]
AlertStatus = Literal["new", "viewed", "resolved"]


class AnomalyDetails(BaseModel):
    """Fields shared by every anomaly type."""

    model_config = ConfigDict(extra="allow")

    percentage_change: Optional[float] = None
    volume_surge: Optional[float] = None
    currency_risk: Optional[float] = None
    z_score: Optional[float] = None
    category: Optional[str] = None
    country: Optional[str] = None
    origin: Optional[str] = None


class PriceSpikeDetails(AnomalyDetails):
    previous_price: Optional[float] = None
    current_price: Optional[float] = None


class TariffChangeDetails(AnomalyDetails):
    hs_code: Optional[str] = None
    previous_rate: Optional[float] = None
    new_rate: Optional[float] = None


class FreightSurgeDetails(AnomalyDetails):
    route: Optional[str] = None
    previous_rate: Optional[float] = None
    current_rate: Optional[float] = None


class FxVolatilityDetails(AnomalyDetails):
    currency_pair: Optional[str] = None
    volatility: Optional[float] = None


class GenericDetails(AnomalyDetails):
    pass


DETAILS_BY_TYPE: Dict[str, Type[AnomalyDetails]] = {
    "price_spike": PriceSpikeDetails,
    "tariff_change": TariffChangeDetails,
    "freight_surge": FreightSurgeDetails,
    "fx_volatility": FxVolatilityDetails,
}


def details_model_for(anomaly_type: str) -> Type[AnomalyDetails]:
    return DETAILS_BY_TYPE.get(anomaly_type, GenericDetails)


class Anomaly(BaseModel):
    id: str
    type: str
    severity: Severity = "low"
    product_id: Optional[str] = None
    detected_at: Optional[datetime] = None
    details: AnomalyDetails = Field(default_factory=GenericDetails)

    @model_validator(mode="before")
    @classmethod
    def _tag_details(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        model = details_model_for(str(data.get("type", "")))
        raw = data.get("details")
        if raw is None:
            return {**data, "details": model()}
        if isinstance(raw, AnomalyDetails):
            raw = raw.model_dump(exclude_none=True)
        return {**data, "details": model.model_validate(raw)}

    @field_validator("detected_at")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value is not None else None

    def details_dict(self) -> Dict[str, Any]:
        return self.details.model_dump(exclude_none=True)


class Alert(BaseModel):
    id: str
    created_at: datetime
    status: AlertStatus = "new"
    anomaly: Optional[Anomaly] = None

    @field_validator("created_at")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)


class Product(BaseModel):
    id: str
    hs_code: str = ""
    category: str = ""
    description: Optional[str] = None

    def summary(self) -> Dict[str, str]:
        return {"id": self.id, "hs_code": self.hs_code, "category": self.category}


class Shipment(BaseModel):
    id: Optional[str] = None
    product_id: str
    price: float
    quantity: float = 0.0
    shipment_date: datetime

    @field_validator("shipment_date")
    @classmethod
    def _utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)
