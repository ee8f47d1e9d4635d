"""
Load bookkeeping records from a JSON document into the configured store.

The document uses the key-value layout: one array per entity under the
``transport_*`` keys. Record ids in the file are only used to wire references
together; every row receives a freshly generated id when it is stored.
Records already present in the store are reused, so repeated imports do not
duplicate data.

Usage:
    python -m backend.load_demo              # loads backend/data/demo_data.json
    python -m backend.load_demo --file path  # load a specific file
    python -m backend.load_demo --reset      # remove existing records before importing
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from pydantic import ValidationError as SchemaValidationError

from . import schemas
from .config import get_settings
from .database import open_store
from .logging_utils import configure_root_logger, get_logger
from .repository import Store
from .resources import RESOURCES

LOGGER = get_logger(__name__)

DATA_DIR = Path(__file__).parent / "data"
DEFAULT_JSON = DATA_DIR / "demo_data.json"

# Trucks and drivers reference each other, so drivers are stored first and
# their truck assignment is patched once the trucks exist.
LOAD_ORDER = ("clients", "drivers", "trucks", "trips", "costs", "payments")
CREATE_SCHEMAS = {
    "clients": schemas.ClientCreate,
    "drivers": schemas.DriverCreate,
    "trucks": schemas.TruckCreate,
    "trips": schemas.TripCreate,
    "costs": schemas.CostCreate,
    "payments": schemas.PaymentCreate,
}
REFERENCE_FIELDS = ("client_id", "truck_id", "driver_id", "assigned_driver_id")


def load_json_records(path: Path) -> Dict[str, List[dict]]:
    if not path.exists():
        raise FileNotFoundError(f"JSON data file not found: {path}")
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def clear_store(store: Store) -> int:
    removed = 0
    for name in reversed(LOAD_ORDER):
        repository = store.resource(name)
        for record in repository.list():
            repository.delete(record.id)
            removed += 1
    return removed


def _remap(entry: dict, id_map: Dict[str, str]) -> dict:
    remapped = {key: value for key, value in entry.items() if key not in {"id", "created_at"}}
    for field in REFERENCE_FIELDS:
        if remapped.get(field) in id_map:
            remapped[field] = id_map[remapped[field]]
    return remapped


def _fingerprint(values: Mapping[str, object], fields: Sequence[str]) -> Tuple[object, ...]:
    return tuple(values.get(field) for field in fields)


def load_records(store: Store, document: Dict[str, List[dict]], *, reset: bool = False) -> Dict[str, int]:
    """Persist *document* into *store*, returning the number of rows written per resource.

    Trucks are upserted by license plate. Other records that already exist with
    the same field values are reused instead of duplicated, so importing the
    same document twice leaves the store unchanged.
    """
    if reset:
        removed = clear_store(store)
        LOGGER.info("Removed %s existing records", removed)

    id_map: Dict[str, str] = {}
    pending_assignments: Dict[str, str] = {}
    counts: Dict[str, int] = {}

    for name in LOAD_ORDER:
        spec = RESOURCES[name]
        repository = store.resource(name)
        # Driver truck assignments are patched afterwards and not compared.
        fields = [field for field in CREATE_SCHEMAS[name].model_fields if field != "assigned_truck_id"]
        known = {
            _fingerprint(record.model_dump(), fields): record.id
            for record in repository.list()
        }
        counts[name] = 0
        skipped = 0
        for entry in document.get(spec.storage_key, []):
            values = _remap(entry, id_map)
            truck_ref = values.pop("assigned_truck_id", None) if name == "drivers" else None
            try:
                payload = CREATE_SCHEMAS[name].model_validate(values)
            except SchemaValidationError as exc:
                LOGGER.warning("Skipping invalid %s record %s: %s", spec.label.lower(), entry.get("id"), exc)
                continue

            if name == "trucks":
                existing = next(
                    (truck for truck in repository.list() if truck.license_plate == payload.license_plate),
                    None,
                )
                stored = repository.update(existing.id, payload) if existing else repository.create(payload)
                stored_id = stored.id
                counts[name] += 1
            else:
                stored_id = known.get(_fingerprint(payload.model_dump(), fields))
                if stored_id is None:
                    stored_id = repository.create(payload).id
                    counts[name] += 1
                else:
                    skipped += 1

            if entry.get("id"):
                id_map[entry["id"]] = stored_id
            if truck_ref:
                pending_assignments[stored_id] = truck_ref
        if skipped:
            LOGGER.info("Kept %s existing %s", skipped, name)

    for driver_id, truck_ref in pending_assignments.items():
        driver = store.drivers.get(driver_id)
        payload = schemas.DriverUpdate.model_validate(
            {**driver.model_dump(exclude={"id", "created_at"}), "assigned_truck_id": id_map.get(truck_ref, truck_ref)}
        )
        store.drivers.update(driver_id, payload)

    return counts


def parse_cli_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Load bookkeeping JSON data into the configured store."
    )
    parser.add_argument(
        "--file",
        "-f",
        type=Path,
        default=DEFAULT_JSON,
        help=f"Path to the JSON data file (default: {DEFAULT_JSON})",
    )
    parser.add_argument(
        "--reset",
        action="store_true",
        help="Delete existing records before importing.",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_cli_args(argv)
    configure_root_logger(get_settings().log_level)
    document = load_json_records(args.file)
    with open_store(bootstrap=True) as store:
        counts = load_records(store, document, reset=args.reset)
    summary = ", ".join(f"{name}: {count}" for name, count in counts.items())
    LOGGER.info("Imported %s", summary)


if __name__ == "__main__":
    main()
