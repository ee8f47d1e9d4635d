"""Financial reporting over already-loaded trips, costs and payments.

The helpers bucket records by calendar day and by dimension (client, cost
category, driver) to feed the dashboard charts and tables. They are pure
functions; the API layer fetches the records and hands them in.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Optional, Sequence

from .schemas import (
    BreakdownItem,
    ClientBalance,
    ClientRead,
    DashboardReport,
    DatePoint,
    DriverActivity,
    DriverDatePoint,
    DriverRead,
    DriverSummary,
    OverviewReport,
    ReportTotals,
)
from .utils import as_calendar_date

REVENUE_SERIES_POINTS = 14
DRIVER_SERIES_POINTS = 7
UNKNOWN = "Unknown"


def date_label(day: date) -> str:
    """Short chart label, e.g. ``Jan 3``."""
    return f"{day:%b} {day.day}"


def _within(record: object, start: date, end: date) -> bool:
    day = as_calendar_date(getattr(record, "date", None))
    return day is not None and start <= day <= end


def _breakdown(groups: Dict[str, float]) -> List[BreakdownItem]:
    items = [BreakdownItem(name=name, value=value) for name, value in groups.items()]
    return sorted(items, key=lambda item: item.value, reverse=True)


def filter_trips(
    trips: Iterable[object],
    start: date,
    end: date,
    *,
    driver_id: Optional[str] = None,
    truck_id: Optional[str] = None,
    client_id: Optional[str] = None,
) -> List[object]:
    return [
        trip
        for trip in trips
        if _within(trip, start, end)
        and (not driver_id or trip.driver_id == driver_id)
        and (not truck_id or trip.truck_id == truck_id)
        and (not client_id or trip.client_id == client_id)
    ]


def filter_costs(
    costs: Iterable[object],
    start: date,
    end: date,
    *,
    truck_id: Optional[str] = None,
) -> List[object]:
    # Only the truck filter applies to costs.
    return [cost for cost in costs if _within(cost, start, end) and (not truck_id or cost.truck_id == truck_id)]


def overview(
    start: date,
    end: date,
    trips: Sequence[object],
    costs: Sequence[object],
    clients: Sequence[object] = (),
    *,
    driver_id: Optional[str] = None,
    truck_id: Optional[str] = None,
    client_id: Optional[str] = None,
    max_points: int = REVENUE_SERIES_POINTS,
) -> OverviewReport:
    """Totals, daily revenue/cost series and breakdowns for a date range."""

    selected_trips = filter_trips(
        trips, start, end, driver_id=driver_id, truck_id=truck_id, client_id=client_id
    )
    selected_costs = filter_costs(costs, start, end, truck_id=truck_id)

    revenue = sum(trip.amount for trip in selected_trips)
    tips = sum(trip.tips for trip in selected_trips)
    total_costs = sum(cost.amount for cost in selected_costs)
    net_profit = revenue + tips - total_costs
    trip_count = len(selected_trips)

    totals = ReportTotals(
        revenue=revenue,
        tips=tips,
        costs=total_costs,
        net_profit=net_profit,
        margin=round(net_profit / revenue * 100, 1) if revenue > 0 else 0.0,
        trip_count=trip_count,
        client_count=len({trip.client_id for trip in selected_trips}),
        truck_count=len({trip.truck_id for trip in selected_trips}),
        average_revenue_per_trip=round(revenue / trip_count) if trip_count else 0.0,
        average_tips_per_trip=round(tips / trip_count) if trip_count else 0.0,
    )

    by_date: Dict[date, DatePoint] = {}
    for trip in selected_trips:
        day = as_calendar_date(trip.date)
        point = by_date.setdefault(day, DatePoint(date=day, label=date_label(day)))
        point.revenue += trip.amount
    for cost in selected_costs:
        day = as_calendar_date(cost.date)
        point = by_date.setdefault(day, DatePoint(date=day, label=date_label(day)))
        point.costs += cost.amount
    series = [by_date[day] for day in sorted(by_date)]
    if max_points > 0:
        series = series[-max_points:]

    client_names = {client.id: client.name for client in clients}
    by_client: Dict[str, float] = defaultdict(float)
    for trip in selected_trips:
        by_client[client_names.get(trip.client_id, UNKNOWN)] += trip.amount

    by_category: Dict[str, float] = defaultdict(float)
    for cost in selected_costs:
        by_category[cost.category.capitalize()] += cost.amount

    return OverviewReport(
        start=start,
        end=end,
        driver_id=driver_id,
        truck_id=truck_id,
        client_id=client_id,
        totals=totals,
        revenue_by_date=series,
        revenue_by_client=_breakdown(by_client),
        costs_by_category=_breakdown(by_category),
    )


def dashboard(
    trips: Sequence[object],
    costs: Sequence[object],
    payments: Sequence[object],
    trucks: Sequence[object],
    clients: Sequence[object],
    drivers: Sequence[object],
) -> DashboardReport:
    """Whole-book headline figures for the landing page."""

    total_revenue = sum(trip.amount for trip in trips)
    total_costs = sum(cost.amount for cost in costs)
    total_paid = sum(payment.amount for payment in payments)

    activity = []
    for driver in drivers:
        driver_trips = [trip for trip in trips if trip.driver_id == driver.id]
        activity.append(
            DriverActivity(
                driver_id=driver.id,
                name=(driver.name.split() or [driver.name])[0],
                trips=len(driver_trips),
                revenue=sum(trip.amount for trip in driver_trips),
            )
        )

    return DashboardReport(
        total_revenue=total_revenue,
        total_costs=total_costs,
        net_profit=total_revenue - total_costs,
        total_trips=len(trips),
        active_trucks=sum(1 for truck in trucks if truck.status == "active"),
        total_clients=len(clients),
        outstanding_balance=total_revenue - total_paid,
        trips_per_driver=activity,
    )


def driver_summary(
    driver: DriverRead,
    trips: Sequence[object],
    costs: Sequence[object],
    trucks: Sequence[object] = (),
    *,
    max_points: int = DRIVER_SERIES_POINTS,
) -> DriverSummary:
    """Lifetime totals for one driver plus a short revenue-by-day series."""

    driver_trips = [trip for trip in trips if trip.driver_id == driver.id]
    diesel = [cost for cost in costs if cost.driver_id == driver.id and cost.category == "diesel"]
    plate = next(
        (truck.license_plate for truck in trucks if truck.id == driver.assigned_truck_id),
        "N/A",
    )

    by_date: Dict[date, DriverDatePoint] = {}
    for trip in driver_trips:
        day = as_calendar_date(trip.date)
        point = by_date.setdefault(
            day, DriverDatePoint(date=day, label=date_label(day), revenue=0.0, trips=0)
        )
        point.revenue += trip.amount
        point.trips += 1
    series = [by_date[day] for day in sorted(by_date)]

    return DriverSummary(
        driver=driver,
        truck_plate=plate,
        trip_count=len(driver_trips),
        total_revenue=sum(trip.amount for trip in driver_trips),
        total_tips=sum(trip.tips for trip in driver_trips),
        total_collected=sum(trip.collected for trip in driver_trips),
        total_diesel=sum(cost.amount for cost in diesel),
        revenue_by_date=series[-max_points:] if max_points > 0 else series,
    )


def client_balance(
    client: ClientRead,
    trips: Sequence[object],
    payments: Sequence[object],
) -> ClientBalance:
    """Billed trips against payments received for one client."""

    client_trips = [trip for trip in trips if trip.client_id == client.id]
    client_payments = [payment for payment in payments if payment.client_id == client.id]
    billed = sum(trip.amount for trip in client_trips)
    paid = sum(payment.amount for payment in client_payments)
    return ClientBalance(
        client=client,
        total_billed=billed,
        total_paid=paid,
        balance=billed - paid,
        trip_count=len(client_trips),
        payment_count=len(client_payments),
    )


__all__ = [
    "client_balance",
    "dashboard",
    "date_label",
    "driver_summary",
    "filter_costs",
    "filter_trips",
    "overview",
]
