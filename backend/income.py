"""Daily income aggregation: per-driver profit split and fleet totals.

Everything here is a pure reduction over records already loaded by the
caller. Records only need the attributes of the matching read schemas, so ORM
rows and pydantic models are interchangeable. Missing related rows degrade to
zero figures or ``"N/A"`` labels; nothing in this module raises for absent
data. Without an explicit rate the configured ``DRIVER_PORTION_RATE``
applies.
"""

from __future__ import annotations

from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence

from .config import get_settings
from .schemas import DailyIncomeReport, DailyIncomeTotals, DriverDailyIncome
from .utils import as_calendar_date

DIESEL = "diesel"


def _amount(value: object) -> float:
    try:
        return float(value or 0.0)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0


def _portion_rate(rate: Optional[float]) -> float:
    return get_settings().driver_portion_rate if rate is None else rate


def _plates_by_truck(trucks: Optional[Iterable[object]]) -> Dict[str, str]:
    return {truck.id: truck.license_plate for truck in trucks or ()}


def driver_daily_income(
    driver: object,
    day: date,
    trips: Sequence[object],
    costs: Sequence[object],
    *,
    rate: Optional[float] = None,
    truck_plate: str = "N/A",
) -> DriverDailyIncome:
    """Summarise one driver's trips and diesel spend on *day*."""

    rate = _portion_rate(rate)
    driver_trips = [
        trip for trip in trips if trip.driver_id == driver.id and as_calendar_date(trip.date) == day
    ]
    diesel = [
        cost
        for cost in costs
        if cost.driver_id == driver.id and as_calendar_date(cost.date) == day and cost.category == DIESEL
    ]

    total_revenue = sum(_amount(trip.amount) for trip in driver_trips)
    total_tips = sum(_amount(trip.tips) for trip in driver_trips)
    total_collected = sum(_amount(trip.collected) for trip in driver_trips)
    diesel_costs = sum(_amount(cost.amount) for cost in diesel)

    driver_portion = total_revenue * rate
    net_profit = total_revenue + total_tips - diesel_costs

    return DriverDailyIncome(
        driver_id=driver.id,
        driver_name=driver.name,
        truck_plate=truck_plate,
        date=day,
        trip_count=len(driver_trips),
        total_revenue=total_revenue,
        total_tips=total_tips,
        total_collected=total_collected,
        diesel_costs=diesel_costs,
        driver_portion=driver_portion,
        owner_profit=net_profit - driver_portion,
        net_profit=net_profit,
        trip_ids=[trip.id for trip in driver_trips],
        cost_ids=[cost.id for cost in diesel],
    )


def fleet_totals(rows: Iterable[DriverDailyIncome]) -> DailyIncomeTotals:
    totals = DailyIncomeTotals()
    for row in rows:
        totals.revenue += row.total_revenue
        totals.tips += row.total_tips
        totals.collected += row.total_collected
        totals.diesel += row.diesel_costs
        totals.driver_portions += row.driver_portion
        totals.owner_profit += row.owner_profit
        totals.net_profit += row.net_profit
        totals.trips += row.trip_count
    return totals


def daily_income(
    day: date,
    drivers: Sequence[object],
    trips: Sequence[object],
    costs: Sequence[object],
    *,
    trucks: Optional[Sequence[object]] = None,
    rate: Optional[float] = None,
) -> DailyIncomeReport:
    """Compute the per-driver daily income table and fleet totals for *day*.

    Every driver gets a row, including drivers with no activity, so the
    report always lists the whole roster.
    """

    rate = _portion_rate(rate)
    plates = _plates_by_truck(trucks)
    rows: List[DriverDailyIncome] = [
        driver_daily_income(
            driver,
            day,
            trips,
            costs,
            rate=rate,
            truck_plate=plates.get(driver.assigned_truck_id or "", "N/A"),
        )
        for driver in drivers
    ]
    return DailyIncomeReport(
        date=day,
        driver_portion_rate=rate,
        drivers=rows,
        totals=fleet_totals(rows),
    )


__all__ = ["daily_income", "driver_daily_income", "fleet_totals"]
