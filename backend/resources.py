"""Per-entity metadata shared by both repository backends.

A :class:`ResourceSpec` tells a repository which ORM model and pydantic schema
belong to a resource, which query parameters act as equality filters, how
listings are ordered and which fields must stay unique.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple, Type

from pydantic import BaseModel

from . import models, schemas


@dataclass(frozen=True)
class ResourceSpec:
    name: str
    label: str
    id_prefix: str
    storage_key: str
    model: Type[models.Base]
    read_schema: Type[BaseModel]
    filters: Tuple[str, ...] = ()
    ordering: Tuple[str, ...] = ("created_at",)
    unique_fields: Tuple[str, ...] = ()

    def conflict_message(self, field: str) -> str:
        return f"{field.replace('_', ' ').capitalize()} already exists"


CLIENTS = ResourceSpec(
    name="clients",
    label="Client",
    id_prefix="client",
    storage_key="transport_clients",
    model=models.Client,
    read_schema=schemas.ClientRead,
)

TRUCKS = ResourceSpec(
    name="trucks",
    label="Truck",
    id_prefix="truck",
    storage_key="transport_trucks",
    model=models.Truck,
    read_schema=schemas.TruckRead,
    filters=("status", "assigned_driver_id"),
    unique_fields=("license_plate",),
)

DRIVERS = ResourceSpec(
    name="drivers",
    label="Driver",
    id_prefix="driver",
    storage_key="transport_drivers",
    model=models.Driver,
    read_schema=schemas.DriverRead,
    filters=("assigned_truck_id",),
)

TRIPS = ResourceSpec(
    name="trips",
    label="Trip",
    id_prefix="trip",
    storage_key="transport_trips",
    model=models.Trip,
    read_schema=schemas.TripRead,
    filters=("date", "driver_id", "truck_id", "client_id"),
    ordering=("date", "created_at"),
)

COSTS = ResourceSpec(
    name="costs",
    label="Cost",
    id_prefix="cost",
    storage_key="transport_costs",
    model=models.Cost,
    read_schema=schemas.CostRead,
    filters=("date", "driver_id", "truck_id", "category"),
    ordering=("date", "created_at"),
)

PAYMENTS = ResourceSpec(
    name="payments",
    label="Payment",
    id_prefix="payment",
    storage_key="transport_payments",
    model=models.Payment,
    read_schema=schemas.PaymentRead,
    filters=("date", "client_id", "method"),
    ordering=("date", "created_at"),
)

RESOURCES: Dict[str, ResourceSpec] = {
    spec.name: spec for spec in (CLIENTS, TRUCKS, DRIVERS, TRIPS, COSTS, PAYMENTS)
}


__all__ = ["RESOURCES", "ResourceSpec", "CLIENTS", "TRUCKS", "DRIVERS", "TRIPS", "COSTS", "PAYMENTS"]
