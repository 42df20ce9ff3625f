"""
JSON file store for apiaries, hives and their inspection records.

The whole store is one JSON document, rewritten atomically on every change:
    {"apiaries": [...], "hives": [...], "inspections": [...],
     "treatments": [...], "harvests": [...]}

Changes are written first and only adopted in memory once the write
succeeded, so a failed write leaves the store exactly as it was.
"""

import json
import os
import tempfile
import threading
from dataclasses import asdict, fields
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Type, TypeVar

from .types import Apiary, Hive, Inspection, Treatment, Harvest, VarroaLevel, DashboardSummary


class StoreError(Exception):
    """The store file could not be read or written."""


class ApiaryNotFoundError(StoreError):
    def __init__(self, apiary_id: str):
        super().__init__(f"Apiary not found: {apiary_id}")
        self.apiary_id = apiary_id


class HiveNotFoundError(StoreError):
    def __init__(self, hive_id: str):
        super().__init__(f"Hive not found: {hive_id}")
        self.hive_id = hive_id


class TreatmentNotFoundError(StoreError):
    def __init__(self, treatment_id: str):
        super().__init__(f"Treatment not found: {treatment_id}")
        self.treatment_id = treatment_id


R = TypeVar("R")

# Collection name -> record type, in document order
COLLECTIONS: Dict[str, type] = {
    "apiaries": Apiary,
    "hives": Hive,
    "inspections": Inspection,
    "treatments": Treatment,
    "harvests": Harvest,
}

# Collections that belong to a hive and go when it does
HIVE_RECORDS = ("inspections", "treatments", "harvests")

DATE_FIELDS = {"date", "next_check_date"}

# Varroa levels counted as alerts on the dashboard
VARROA_ALERT_LEVELS = (VarroaLevel.MEDIUM, VarroaLevel.HIGH)


def _to_dict(record) -> dict:
    data = asdict(record)
    for key, value in data.items():
        if isinstance(value, datetime):
            data[key] = value.isoformat()
        elif isinstance(value, VarroaLevel):
            data[key] = value.value
    return data


def _from_dict(record_type: Type[R], data: dict) -> R:
    known = {f.name for f in fields(record_type)}
    values = {k: v for k, v in data.items() if k in known}
    for key in DATE_FIELDS & values.keys():
        if values[key] is not None:
            values[key] = datetime.fromisoformat(values[key])
    if "varroa_level" in values:
        values["varroa_level"] = VarroaLevel(values["varroa_level"])
    return record_type(**values)


class InspectionStore:
    """
    Persistent store for beekeeping records.

    Thread-safe: the inspection controller saves from the capture thread
    while the CLI reads from the main thread.

    Usage:
        store = InspectionStore.open(config.store_file)
        apiary = store.add_apiary("Home yard")
        hive = store.add_hive("Hive 1", apiary_id=apiary.id)
        store.save_inspection(Inspection(hive_id=hive.id, queen_seen=True))
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._records: Dict[str, list] = {name: [] for name in COLLECTIONS}
        self._lock = threading.RLock()

    @classmethod
    def open(cls, path: Path) -> "InspectionStore":
        store = cls(path)
        store.load()
        return store

    def load(self) -> None:
        """Read the store file; a missing file is an empty store."""
        if not self.path.exists():
            return

        try:
            with open(self.path) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StoreError(f"Could not read {self.path}: {e}") from e

        if not isinstance(data, dict):
            raise StoreError(f"Could not read {self.path}: not a store document")

        records = {}
        for name, record_type in COLLECTIONS.items():
            try:
                records[name] = [_from_dict(record_type, d) for d in data.get(name, [])]
            except (TypeError, ValueError, KeyError, AttributeError) as e:
                raise StoreError(f"Bad {name} record in {self.path}: {e}") from e

        with self._lock:
            self._records = records

    def _commit(self, **changes: list) -> None:
        """Write the store with `changes` applied, then adopt them. Caller holds the lock."""
        records = {**self._records, **changes}
        self._save(records)
        self._records = records

    def _save(self, records: Dict[str, list]) -> None:
        """Atomic write: write to temp, then replace."""
        document = {name: [_to_dict(r) for r in items] for name, items in records.items()}

        temp_path = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(dir=self.path.parent, suffix=".json.tmp")
            with os.fdopen(fd, "w") as f:
                json.dump(document, f, indent=2)
            os.replace(temp_path, self.path)
        except OSError as e:
            if temp_path is not None and os.path.exists(temp_path):
                os.unlink(temp_path)
            raise StoreError(f"Could not write {self.path}: {e}") from e

    def _append(self, collection: str, record) -> None:
        self._commit(**{collection: self._records[collection] + [record]})

    # Apiaries

    def add_apiary(
        self,
        name: str,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        notes: str = "",
    ) -> Apiary:
        apiary = Apiary(name=name, latitude=latitude, longitude=longitude, notes=notes)
        with self._lock:
            self._append("apiaries", apiary)
        return apiary

    def list_apiaries(self) -> List[Apiary]:
        """All apiaries sorted by name."""
        with self._lock:
            return sorted(self._records["apiaries"], key=lambda a: a.name)

    def get_apiary(self, apiary_id: str) -> Optional[Apiary]:
        with self._lock:
            return next((a for a in self._records["apiaries"] if a.id == apiary_id), None)

    def delete_apiary(self, apiary_id: str) -> List[Treatment]:
        """
        Delete an apiary with all of its hives and their records.

        Returns:
            The treatments removed, so their reminders can be cancelled
        """
        with self._lock:
            if self.get_apiary(apiary_id) is None:
                raise ApiaryNotFoundError(apiary_id)

            hive_ids = {h.id for h in self._records["hives"] if h.apiary_id == apiary_id}
            removed = [t for t in self._records["treatments"] if t.hive_id in hive_ids]
            self._commit(
                apiaries=[a for a in self._records["apiaries"] if a.id != apiary_id],
                **self._without_hives(hive_ids),
            )
        return removed

    # Hives

    def add_hive(
        self,
        name: str,
        apiary_id: Optional[str] = None,
        qr_string: str = "",
        type: str = "Langstroth",
        notes: str = "",
    ) -> Hive:
        with self._lock:
            if apiary_id is not None and self.get_apiary(apiary_id) is None:
                raise ApiaryNotFoundError(apiary_id)

            hive = Hive(name=name, apiary_id=apiary_id, qr_string=qr_string, type=type, notes=notes)
            self._append("hives", hive)
        return hive

    def get_hive(self, hive_id: str) -> Optional[Hive]:
        with self._lock:
            return next((h for h in self._records["hives"] if h.id == hive_id), None)

    def find_hive_by_qr(self, qr_string: str) -> Optional[Hive]:
        """Resolve a scanned QR payload to its hive."""
        code = qr_string.strip()
        with self._lock:
            return next((h for h in self._records["hives"] if h.qr_string == code), None)

    def list_hives(self, apiary_id: Optional[str] = None) -> List[Hive]:
        with self._lock:
            hives = self._records["hives"]
            if apiary_id is not None:
                hives = [h for h in hives if h.apiary_id == apiary_id]
            return sorted(hives, key=lambda h: h.name)

    def delete_hive(self, hive_id: str) -> List[Treatment]:
        """
        Delete a hive with its inspections, treatments and harvests.

        Returns:
            The treatments removed, so their reminders can be cancelled
        """
        with self._lock:
            self._require_hive(hive_id)
            removed = [t for t in self._records["treatments"] if t.hive_id == hive_id]
            self._commit(**self._without_hives({hive_id}))
        return removed

    def _without_hives(self, hive_ids: set) -> Dict[str, list]:
        """Collections with the given hives and their records filtered out."""
        changes = {"hives": [h for h in self._records["hives"] if h.id not in hive_ids]}
        for name in HIVE_RECORDS:
            changes[name] = [r for r in self._records[name] if r.hive_id not in hive_ids]
        return changes

    def _require_hive(self, hive_id: str) -> Hive:
        hive = self.get_hive(hive_id)
        if hive is None:
            raise HiveNotFoundError(hive_id)
        return hive

    # Records

    def save_inspection(self, inspection: Inspection) -> Inspection:
        with self._lock:
            self._require_hive(inspection.hive_id)
            self._append("inspections", inspection)
        return inspection

    def add_treatment(self, treatment: Treatment) -> Treatment:
        with self._lock:
            self._require_hive(treatment.hive_id)
            self._append("treatments", treatment)
        return treatment

    def delete_treatment(self, treatment_id: str) -> Treatment:
        """Delete one treatment and return it."""
        with self._lock:
            treatment = next((t for t in self._records["treatments"] if t.id == treatment_id), None)
            if treatment is None:
                raise TreatmentNotFoundError(treatment_id)
            self._commit(treatments=[t for t in self._records["treatments"] if t.id != treatment_id])
        return treatment

    def add_harvest(self, harvest: Harvest) -> Harvest:
        with self._lock:
            self._require_hive(harvest.hive_id)
            self._append("harvests", harvest)
        return harvest

    def inspections_for(self, hive_id: str) -> List[Inspection]:
        """Inspections of a hive, newest first."""
        return self._records_for("inspections", hive_id)

    def list_treatments(self) -> List[Treatment]:
        with self._lock:
            return list(self._records["treatments"])

    def treatments_for(self, hive_id: str) -> List[Treatment]:
        return self._records_for("treatments", hive_id)

    def harvests_for(self, hive_id: str) -> List[Harvest]:
        return self._records_for("harvests", hive_id)

    def _records_for(self, collection: str, hive_id: str) -> list:
        with self._lock:
            records = [r for r in self._records[collection] if r.hive_id == hive_id]
        return sorted(records, key=lambda r: r.date, reverse=True)

    # Dashboard

    def upcoming_treatments(self, now: Optional[datetime] = None) -> List[Treatment]:
        """Treatments with a check date at or after `now`, soonest first."""
        now = now or datetime.now()
        with self._lock:
            upcoming = [
                t for t in self._records["treatments"]
                if t.next_check_date is not None and t.next_check_date >= now
            ]
        return sorted(upcoming, key=lambda t: t.next_check_date)

    def summary(self, now: Optional[datetime] = None, limit: int = 5) -> DashboardSummary:
        """Totals across every hive, plus the latest inspections and next checks."""
        with self._lock:
            inspections = sorted(self._records["inspections"], key=lambda i: i.date, reverse=True)
            return DashboardSummary(
                total_hives=len(self._records["hives"]),
                total_inspections=len(inspections),
                varroa_alerts=sum(1 for i in inspections if i.varroa_level in VARROA_ALERT_LEVELS),
                total_harvest_kg=sum(h.weight_kg for h in self._records["harvests"]),
                recent_inspections=inspections[:limit],
                upcoming_treatments=self.upcoming_treatments(now)[:limit],
            )

    # Export

    def export_json(self, export_date: Optional[datetime] = None) -> str:
        """
        Export everything as one nested JSON document.

        Apiaries are sorted by name and contain their hives, which contain
        their inspections, treatments and harvests. Hives without an
        apiary are listed under "unassignedHives".
        """
        export_date = export_date or datetime.now()

        with self._lock:
            apiaries = [
                {
                    "id": apiary.id,
                    "name": apiary.name,
                    "latitude": apiary.latitude,
                    "longitude": apiary.longitude,
                    "notes": apiary.notes,
                    "hives": [self._export_hive(h) for h in self.list_hives(apiary.id)],
                }
                for apiary in self.list_apiaries()
            ]
            unassigned = [self._export_hive(h) for h in self.list_hives() if h.apiary_id is None]

        document = {
            "exportDate": export_date.isoformat(),
            "apiaries": apiaries,
            "unassignedHives": unassigned,
        }
        return json.dumps(document, indent=2)

    def _export_hive(self, hive: Hive) -> dict:
        return {
            "id": hive.id,
            "name": hive.name,
            "qrString": hive.qr_string,
            "type": hive.type,
            "notes": hive.notes,
            "inspections": [
                {
                    "id": i.id,
                    "date": i.date.isoformat(),
                    "queenSeen": i.queen_seen,
                    "eggsPresent": i.eggs_present,
                    "broodPatternGood": i.brood_pattern_good,
                    "queenCells": i.queen_cells,
                    "varroaLevel": i.varroa_level.value,
                    "photos": i.photos,
                    "transcript": i.transcript,
                    "tags": i.tags,
                }
                for i in self.inspections_for(hive.id)
            ],
            "treatments": [
                {
                    "id": t.id,
                    "date": t.date.isoformat(),
                    "product": t.product,
                    "dosage": t.dosage,
                    "notes": t.notes,
                    "nextCheckDate": t.next_check_date.isoformat() if t.next_check_date else None,
                }
                for t in self.treatments_for(hive.id)
            ],
            "harvests": [
                {
                    "id": h.id,
                    "date": h.date.isoformat(),
                    "weightKg": h.weight_kg,
                    "notes": h.notes,
                }
                for h in self.harvests_for(hive.id)
            ],
        }
