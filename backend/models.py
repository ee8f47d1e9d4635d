from __future__ import annotations

from sqlalchemy import Column, Date, DateTime, Float, String, Text
from sqlalchemy.orm import declarative_base

from .utils import new_id, utc_now

Base = declarative_base()


def _id_factory(prefix: str):
    return lambda: new_id(prefix)


class Client(Base):
    __tablename__ = "clients"

    id = Column(String(64), primary_key=True, default=_id_factory("client"))
    name = Column(String(255), nullable=False)
    phone = Column(String(50))
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)


class Truck(Base):
    __tablename__ = "trucks"

    id = Column(String(64), primary_key=True, default=_id_factory("truck"))
    name = Column(String(255), nullable=False)
    license_plate = Column(String(50), nullable=False, unique=True)
    model = Column(String(255))
    capacity = Column(String(100))
    status = Column(String(20), nullable=False, default="active")
    # Weak reference: no foreign key, deleting the driver leaves the truck untouched.
    assigned_driver_id = Column(String(64), index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)


class Driver(Base):
    __tablename__ = "drivers"

    id = Column(String(64), primary_key=True, default=_id_factory("driver"))
    name = Column(String(255), nullable=False)
    license_number = Column(String(100))
    email = Column(String(255))
    phone = Column(String(50))
    assigned_truck_id = Column(String(64), index=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)


class Trip(Base):
    __tablename__ = "trips"

    id = Column(String(64), primary_key=True, default=_id_factory("trip"))
    client_id = Column(String(64), nullable=False, index=True)
    truck_id = Column(String(64), nullable=False, index=True)
    driver_id = Column(String(64), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    service_type = Column(String(30), nullable=False)
    material = Column(String(255))
    quantity = Column(String(100))
    origin = Column(String(255), nullable=False)
    destination = Column(String(255), nullable=False)
    distance = Column(Float)
    amount = Column(Float, nullable=False)
    tips = Column(Float, nullable=False, default=0.0)
    collected = Column(Float, nullable=False, default=0.0)
    notes = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)


class Cost(Base):
    __tablename__ = "costs"

    id = Column(String(64), primary_key=True, default=_id_factory("cost"))
    date = Column(Date, nullable=False, index=True)
    amount = Column(Float, nullable=False)
    category = Column(String(30), nullable=False, index=True)
    truck_id = Column(String(64), index=True)
    driver_id = Column(String(64), index=True)
    description = Column(Text, nullable=False, default="")
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)


class Payment(Base):
    __tablename__ = "payments"

    id = Column(String(64), primary_key=True, default=_id_factory("payment"))
    client_id = Column(String(64), nullable=False, index=True)
    date = Column(Date, nullable=False, index=True)
    amount = Column(Float, nullable=False)
    method = Column(String(20), nullable=False)
    reference = Column(String(100))
    notes = Column(Text)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utc_now)
