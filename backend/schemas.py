from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .utils import (
    COST_CATEGORIES,
    PAYMENT_METHODS,
    SERVICE_TYPES,
    TRUCK_STATUSES,
    normalize_choice,
    parse_calendar_date,
)


def _blank_to_none(value: object) -> object:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class ClientBase(BaseModel):
    name: str = Field(..., min_length=1)
    phone: Optional[str] = None


class ClientCreate(ClientBase):
    pass


class ClientUpdate(ClientBase):
    pass


class ClientRead(ClientBase):
    id: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TruckBase(BaseModel):
    name: str = Field(..., min_length=1)
    license_plate: str = Field(..., min_length=1)
    model: Optional[str] = None
    capacity: Optional[str] = None
    status: str = Field("active", pattern="^(active|maintenance|inactive)$")
    assigned_driver_id: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: Optional[str]) -> object:
        if value is None:
            return "active"
        return normalize_choice(value, TRUCK_STATUSES)

    @field_validator("license_plate", mode="before")
    @classmethod
    def _normalize_plate(cls, value: object) -> object:
        return value.strip().upper() if isinstance(value, str) else value

    @field_validator("assigned_driver_id", mode="before")
    @classmethod
    def _optional_reference(cls, value: object) -> object:
        return _blank_to_none(value)


class TruckCreate(TruckBase):
    pass


class TruckUpdate(TruckBase):
    pass


class TruckRead(TruckBase):
    id: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DriverBase(BaseModel):
    name: str = Field(..., min_length=1)
    license_number: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    assigned_truck_id: Optional[str] = None

    @field_validator("assigned_truck_id", mode="before")
    @classmethod
    def _optional_reference(cls, value: object) -> object:
        return _blank_to_none(value)


class DriverCreate(DriverBase):
    pass


class DriverUpdate(DriverBase):
    pass


class DriverRead(DriverBase):
    id: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TripBase(BaseModel):
    client_id: str = Field(..., min_length=1)
    truck_id: str = Field(..., min_length=1)
    driver_id: str = Field(..., min_length=1)
    date: date
    service_type: str = Field(..., pattern="^(material_transport|transport_only)$")
    material: Optional[str] = None
    quantity: Optional[str] = None
    origin: str = Field(..., min_length=1)
    destination: str = Field(..., min_length=1)
    distance: Optional[float] = None
    amount: float
    tips: float = 0.0
    collected: float = 0.0
    notes: Optional[str] = None

    @field_validator("date", mode="before")
    @classmethod
    def _calendar_day(cls, value: object) -> date:
        return parse_calendar_date(value)  # type: ignore[arg-type]

    @field_validator("service_type", mode="before")
    @classmethod
    def _normalize_service_type(cls, value: object) -> object:
        return normalize_choice(value, SERVICE_TYPES)

    @field_validator("tips", "collected", mode="before")
    @classmethod
    def _default_zero(cls, value: object) -> object:
        return 0.0 if value is None or value == "" else value


class TripCreate(TripBase):
    pass


class TripUpdate(TripBase):
    pass


class TripRead(TripBase):
    id: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CostBase(BaseModel):
    date: date
    amount: float
    category: str = Field(..., pattern="^(diesel|maintenance|repairs|tires|oil|tolls|other)$")
    truck_id: Optional[str] = None
    driver_id: Optional[str] = None
    description: str = ""

    @field_validator("date", mode="before")
    @classmethod
    def _calendar_day(cls, value: object) -> date:
        return parse_calendar_date(value)  # type: ignore[arg-type]

    @field_validator("category", mode="before")
    @classmethod
    def _normalize_category(cls, value: object) -> object:
        return normalize_choice(value, COST_CATEGORIES)

    @field_validator("truck_id", "driver_id", mode="before")
    @classmethod
    def _optional_reference(cls, value: object) -> object:
        return _blank_to_none(value)

    @field_validator("description", mode="before")
    @classmethod
    def _description_text(cls, value: object) -> object:
        return "" if value is None else value


class CostCreate(CostBase):
    pass


class CostUpdate(CostBase):
    pass


class CostRead(CostBase):
    id: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaymentBase(BaseModel):
    client_id: str = Field(..., min_length=1)
    date: date
    amount: float
    method: str = Field(..., pattern="^(cash|transfer|check)$")
    reference: Optional[str] = None
    notes: Optional[str] = None

    @field_validator("date", mode="before")
    @classmethod
    def _calendar_day(cls, value: object) -> date:
        return parse_calendar_date(value)  # type: ignore[arg-type]

    @field_validator("method", mode="before")
    @classmethod
    def _normalize_method(cls, value: object) -> object:
        return normalize_choice(value, PAYMENT_METHODS)


class PaymentCreate(PaymentBase):
    pass


class PaymentUpdate(PaymentBase):
    pass


class PaymentRead(PaymentBase):
    id: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class HealthStatus(BaseModel):
    status: str
    message: str


class DeleteResult(BaseModel):
    message: str


class DriverDailyIncome(BaseModel):
    driver_id: str
    driver_name: str
    truck_plate: str
    date: date
    trip_count: int = 0
    total_revenue: float = 0.0
    total_tips: float = 0.0
    total_collected: float = 0.0
    diesel_costs: float = 0.0
    driver_portion: float = 0.0
    owner_profit: float = 0.0
    net_profit: float = 0.0
    trip_ids: List[str] = Field(default_factory=list)
    cost_ids: List[str] = Field(default_factory=list)


class DailyIncomeTotals(BaseModel):
    revenue: float = 0.0
    tips: float = 0.0
    collected: float = 0.0
    diesel: float = 0.0
    driver_portions: float = 0.0
    owner_profit: float = 0.0
    net_profit: float = 0.0
    trips: int = 0


class DailyIncomeReport(BaseModel):
    date: date
    driver_portion_rate: float
    drivers: List[DriverDailyIncome]
    totals: DailyIncomeTotals


class ReportTotals(BaseModel):
    revenue: float = 0.0
    tips: float = 0.0
    costs: float = 0.0
    net_profit: float = 0.0
    margin: float = 0.0
    trip_count: int = 0
    client_count: int = 0
    truck_count: int = 0
    average_revenue_per_trip: float = 0.0
    average_tips_per_trip: float = 0.0


class DatePoint(BaseModel):
    date: date
    label: str
    revenue: float = 0.0
    costs: float = 0.0


class BreakdownItem(BaseModel):
    name: str
    value: float


class OverviewReport(BaseModel):
    start: date
    end: date
    driver_id: Optional[str] = None
    truck_id: Optional[str] = None
    client_id: Optional[str] = None
    totals: ReportTotals
    revenue_by_date: List[DatePoint]
    revenue_by_client: List[BreakdownItem]
    costs_by_category: List[BreakdownItem]


class DriverActivity(BaseModel):
    driver_id: str
    name: str
    trips: int
    revenue: float


class DashboardReport(BaseModel):
    total_revenue: float
    total_costs: float
    net_profit: float
    total_trips: int
    active_trucks: int
    total_clients: int
    outstanding_balance: float
    trips_per_driver: List[DriverActivity]


class DriverDatePoint(BaseModel):
    date: date
    label: str
    revenue: float
    trips: int


class DriverSummary(BaseModel):
    driver: DriverRead
    truck_plate: str
    trip_count: int
    total_revenue: float
    total_tips: float
    total_collected: float
    total_diesel: float
    revenue_by_date: List[DriverDatePoint]


class ClientBalance(BaseModel):
    client: ClientRead
    total_billed: float
    total_paid: float
    balance: float
    trip_count: int
    payment_count: int
