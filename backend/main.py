from contextlib import asynccontextmanager
from datetime import date, timedelta
from typing import Generator, List, Optional

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import get_settings
from .database import init_db, open_store
from .errors import StoreError, ValidationError
from .income import daily_income
from .logging_utils import configure_root_logger, get_logger
from .reports import client_balance, dashboard, driver_summary, overview
from .repository import Store
from .schemas import (
    ClientBalance,
    ClientCreate,
    ClientRead,
    ClientUpdate,
    CostCreate,
    CostRead,
    CostUpdate,
    DailyIncomeReport,
    DashboardReport,
    DeleteResult,
    DriverCreate,
    DriverRead,
    DriverSummary,
    DriverUpdate,
    HealthStatus,
    OverviewReport,
    PaymentCreate,
    PaymentRead,
    PaymentUpdate,
    TripCreate,
    TripRead,
    TripUpdate,
    TruckCreate,
    TruckRead,
    TruckUpdate,
)
from .utils import parse_calendar_date

settings = get_settings()
configure_root_logger(settings.log_level)
LOGGER = get_logger(__name__)

OVERVIEW_DEFAULT_DAYS = 30


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.store_backend == "sql":
        init_db()  # Create tables on first start
    else:
        LOGGER.info("Using key-value store at %s", settings.json_store_path)
    yield


app = FastAPI(
    title="Transport Bookkeeping API",
    description="Clients, trucks, drivers, trips, costs, payments and daily driver profit reports.",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_store() -> Generator[Store, None, None]:
    with open_store() as store:
        yield store


def _error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": {"message": message}})


def _validation_message(errors: List[dict]) -> str:
    missing = [str(error["loc"][-1]) for error in errors if error.get("type") == "missing" and len(error["loc"]) > 1]
    if missing:
        return f"Missing required fields: {', '.join(missing)}"
    if not errors:
        return "Invalid request"
    first = errors[0]
    location = [str(part) for part in first.get("loc", ())]
    field = ".".join(location[1:]) or "request " + ".".join(location)
    return f"Invalid value for {field}: {first.get('msg', 'invalid')}"


@app.exception_handler(StoreError)
async def store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    return _error_response(exc.status_code, exc.message)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return _error_response(400, _validation_message(exc.errors()))


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code == 404 and exc.detail == "Not Found":
        return _error_response(404, "Route not found")
    return _error_response(exc.status_code, str(exc.detail))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    LOGGER.exception("Unhandled error on %s %s", request.method, request.url.path)
    return _error_response(500, "Internal Server Error")


def date_today() -> date:
    return date.today()


def _query_date(value: Optional[str], default: date, name: str) -> date:
    if value is None or not value.strip():
        return default
    try:
        return parse_calendar_date(value)
    except ValueError as exc:
        raise ValidationError(f"Invalid {name} date '{value}'") from exc


def _deleted(label: str) -> DeleteResult:
    return DeleteResult(message=f"{label} deleted successfully")


@app.get("/api/health", response_model=HealthStatus)
def health_check() -> HealthStatus:
    return HealthStatus(status="ok", message="Transport API is running")


@app.get("/api/clients", response_model=List[ClientRead])
def list_clients(store: Store = Depends(get_store)) -> List[ClientRead]:
    return store.clients.list()


@app.get("/api/clients/{client_id}", response_model=ClientRead)
def get_client(client_id: str, store: Store = Depends(get_store)) -> ClientRead:
    return store.clients.get(client_id)


@app.post("/api/clients", response_model=ClientRead, status_code=201)
def create_client(payload: ClientCreate, store: Store = Depends(get_store)) -> ClientRead:
    return store.clients.create(payload)


@app.put("/api/clients/{client_id}", response_model=ClientRead)
def update_client(client_id: str, payload: ClientUpdate, store: Store = Depends(get_store)) -> ClientRead:
    return store.clients.update(client_id, payload)


@app.delete("/api/clients/{client_id}", response_model=DeleteResult)
def delete_client(client_id: str, store: Store = Depends(get_store)) -> DeleteResult:
    store.clients.delete(client_id)
    return _deleted("Client")


@app.get("/api/clients/{client_id}/balance", response_model=ClientBalance)
def get_client_balance(client_id: str, store: Store = Depends(get_store)) -> ClientBalance:
    client = store.clients.get(client_id)
    return client_balance(
        client,
        store.trips.list(client_id=client_id),
        store.payments.list(client_id=client_id),
    )


@app.get("/api/trucks", response_model=List[TruckRead])
def list_trucks(
    status: Optional[str] = None,
    assigned_driver_id: Optional[str] = None,
    store: Store = Depends(get_store),
) -> List[TruckRead]:
    return store.trucks.list(status=status, assigned_driver_id=assigned_driver_id)


@app.get("/api/trucks/{truck_id}", response_model=TruckRead)
def get_truck(truck_id: str, store: Store = Depends(get_store)) -> TruckRead:
    return store.trucks.get(truck_id)


@app.post("/api/trucks", response_model=TruckRead, status_code=201)
def create_truck(payload: TruckCreate, store: Store = Depends(get_store)) -> TruckRead:
    return store.trucks.create(payload)


@app.put("/api/trucks/{truck_id}", response_model=TruckRead)
def update_truck(truck_id: str, payload: TruckUpdate, store: Store = Depends(get_store)) -> TruckRead:
    return store.trucks.update(truck_id, payload)


@app.delete("/api/trucks/{truck_id}", response_model=DeleteResult)
def delete_truck(truck_id: str, store: Store = Depends(get_store)) -> DeleteResult:
    store.trucks.delete(truck_id)
    return _deleted("Truck")


@app.get("/api/drivers", response_model=List[DriverRead])
def list_drivers(
    assigned_truck_id: Optional[str] = None,
    store: Store = Depends(get_store),
) -> List[DriverRead]:
    return store.drivers.list(assigned_truck_id=assigned_truck_id)


@app.get("/api/drivers/{driver_id}", response_model=DriverRead)
def get_driver(driver_id: str, store: Store = Depends(get_store)) -> DriverRead:
    return store.drivers.get(driver_id)


@app.post("/api/drivers", response_model=DriverRead, status_code=201)
def create_driver(payload: DriverCreate, store: Store = Depends(get_store)) -> DriverRead:
    return store.drivers.create(payload)


@app.put("/api/drivers/{driver_id}", response_model=DriverRead)
def update_driver(driver_id: str, payload: DriverUpdate, store: Store = Depends(get_store)) -> DriverRead:
    return store.drivers.update(driver_id, payload)


@app.delete("/api/drivers/{driver_id}", response_model=DeleteResult)
def delete_driver(driver_id: str, store: Store = Depends(get_store)) -> DeleteResult:
    store.drivers.delete(driver_id)
    return _deleted("Driver")


@app.get("/api/drivers/{driver_id}/summary", response_model=DriverSummary)
def get_driver_summary(driver_id: str, store: Store = Depends(get_store)) -> DriverSummary:
    driver = store.drivers.get(driver_id)
    return driver_summary(
        driver,
        store.trips.list(driver_id=driver_id),
        store.costs.list(driver_id=driver_id, category="diesel"),
        store.trucks.list(),
    )


@app.get("/api/trips", response_model=List[TripRead])
def list_trips(
    date: Optional[str] = None,
    driver_id: Optional[str] = None,
    truck_id: Optional[str] = None,
    client_id: Optional[str] = None,
    store: Store = Depends(get_store),
) -> List[TripRead]:
    return store.trips.list(date=date, driver_id=driver_id, truck_id=truck_id, client_id=client_id)


@app.get("/api/trips/{trip_id}", response_model=TripRead)
def get_trip(trip_id: str, store: Store = Depends(get_store)) -> TripRead:
    return store.trips.get(trip_id)


@app.post("/api/trips", response_model=TripRead, status_code=201)
def create_trip(payload: TripCreate, store: Store = Depends(get_store)) -> TripRead:
    return store.trips.create(payload)


@app.put("/api/trips/{trip_id}", response_model=TripRead)
def update_trip(trip_id: str, payload: TripUpdate, store: Store = Depends(get_store)) -> TripRead:
    return store.trips.update(trip_id, payload)


@app.delete("/api/trips/{trip_id}", response_model=DeleteResult)
def delete_trip(trip_id: str, store: Store = Depends(get_store)) -> DeleteResult:
    store.trips.delete(trip_id)
    return _deleted("Trip")


@app.get("/api/costs", response_model=List[CostRead])
def list_costs(
    date: Optional[str] = None,
    driver_id: Optional[str] = None,
    truck_id: Optional[str] = None,
    category: Optional[str] = None,
    store: Store = Depends(get_store),
) -> List[CostRead]:
    return store.costs.list(date=date, driver_id=driver_id, truck_id=truck_id, category=category)


@app.get("/api/costs/{cost_id}", response_model=CostRead)
def get_cost(cost_id: str, store: Store = Depends(get_store)) -> CostRead:
    return store.costs.get(cost_id)


@app.post("/api/costs", response_model=CostRead, status_code=201)
def create_cost(payload: CostCreate, store: Store = Depends(get_store)) -> CostRead:
    return store.costs.create(payload)


@app.put("/api/costs/{cost_id}", response_model=CostRead)
def update_cost(cost_id: str, payload: CostUpdate, store: Store = Depends(get_store)) -> CostRead:
    return store.costs.update(cost_id, payload)


@app.delete("/api/costs/{cost_id}", response_model=DeleteResult)
def delete_cost(cost_id: str, store: Store = Depends(get_store)) -> DeleteResult:
    store.costs.delete(cost_id)
    return _deleted("Cost")


@app.get("/api/payments", response_model=List[PaymentRead])
def list_payments(
    date: Optional[str] = None,
    client_id: Optional[str] = None,
    method: Optional[str] = None,
    store: Store = Depends(get_store),
) -> List[PaymentRead]:
    return store.payments.list(date=date, client_id=client_id, method=method)


@app.get("/api/payments/{payment_id}", response_model=PaymentRead)
def get_payment(payment_id: str, store: Store = Depends(get_store)) -> PaymentRead:
    return store.payments.get(payment_id)


@app.post("/api/payments", response_model=PaymentRead, status_code=201)
def create_payment(payload: PaymentCreate, store: Store = Depends(get_store)) -> PaymentRead:
    return store.payments.create(payload)


@app.put("/api/payments/{payment_id}", response_model=PaymentRead)
def update_payment(payment_id: str, payload: PaymentUpdate, store: Store = Depends(get_store)) -> PaymentRead:
    return store.payments.update(payment_id, payload)


@app.delete("/api/payments/{payment_id}", response_model=DeleteResult)
def delete_payment(payment_id: str, store: Store = Depends(get_store)) -> DeleteResult:
    store.payments.delete(payment_id)
    return _deleted("Payment")


@app.get("/api/reports/daily-income", response_model=DailyIncomeReport)
def get_daily_income(date: Optional[str] = None, store: Store = Depends(get_store)) -> DailyIncomeReport:
    day = _query_date(date, date_today(), "report")
    return daily_income(
        day,
        store.drivers.list(),
        store.trips.list(date=day),
        store.costs.list(date=day, category="diesel"),
        trucks=store.trucks.list(),
        rate=settings.driver_portion_rate,
    )


@app.get("/api/reports/overview", response_model=OverviewReport)
def get_overview(
    start: Optional[str] = None,
    end: Optional[str] = None,
    driver_id: Optional[str] = None,
    truck_id: Optional[str] = None,
    client_id: Optional[str] = None,
    store: Store = Depends(get_store),
) -> OverviewReport:
    end_day = _query_date(end, date_today(), "end")
    start_day = _query_date(start, end_day - timedelta(days=OVERVIEW_DEFAULT_DAYS - 1), "start")
    if start_day > end_day:
        raise ValidationError("start must be on or before end")
    return overview(
        start_day,
        end_day,
        store.trips.list(),
        store.costs.list(),
        store.clients.list(),
        driver_id=driver_id or None,
        truck_id=truck_id or None,
        client_id=client_id or None,
    )


@app.get("/api/reports/dashboard", response_model=DashboardReport)
def get_dashboard(store: Store = Depends(get_store)) -> DashboardReport:
    return dashboard(
        store.trips.list(),
        store.costs.list(),
        store.payments.list(),
        store.trucks.list(),
        store.clients.list(),
        store.drivers.list(),
    )
