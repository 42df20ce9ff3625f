"""
Tests for beespeak InspectionStore.

Tests persistence, lookups, cascading deletes and JSON export.
"""

import json
import pytest
from datetime import datetime, timedelta
from unittest.mock import patch


@pytest.fixture
def store_path(tmp_path):
    return tmp_path / "data" / "beespeak.json"


class TestStorePersistence:
    """Tests for loading and saving the store file."""

    def test_missing_file_is_empty(self, store_path):
        """Test opening a store that does not exist yet."""
        from beespeak.store import InspectionStore

        store = InspectionStore.open(store_path)

        assert store.list_apiaries() == []
        assert store.list_hives() == []
        assert not store_path.exists()

    def test_records_survive_reopen(self, store_path):
        """Test records round-trip through the file."""
        from beespeak.store import InspectionStore
        from beespeak.types import Inspection, Treatment, VarroaLevel

        store = InspectionStore.open(store_path)
        apiary = store.add_apiary("Orchard", latitude=51.5, longitude=-0.1)
        hive = store.add_hive("Hive A", apiary_id=apiary.id, qr_string="QR-A")
        store.save_inspection(Inspection(
            hive_id=hive.id,
            queen_seen=True,
            eggs_present=False,
            varroa_level=VarroaLevel.MEDIUM,
            transcript="queen seen no eggs varroa medium",
        ))
        check = datetime(2026, 5, 1, 9, 30)
        store.add_treatment(Treatment(hive_id=hive.id, product="Apivar", dosage="2 strips",
                                      next_check_date=check, notification_id="n-1"))

        reopened = InspectionStore.open(store_path)

        assert reopened.get_apiary(apiary.id).latitude == 51.5
        assert reopened.find_hive_by_qr("QR-A").id == hive.id
        inspection = reopened.inspections_for(hive.id)[0]
        assert inspection.queen_seen is True
        assert inspection.eggs_present is False
        assert inspection.brood_pattern_good is None
        assert inspection.varroa_level is VarroaLevel.MEDIUM
        assert isinstance(inspection.date, datetime)
        treatment = reopened.treatments_for(hive.id)[0]
        assert treatment.next_check_date == check
        assert treatment.notification_id == "n-1"

    def test_corrupt_file_raises(self, store_path):
        """Test an unreadable store file raises StoreError."""
        from beespeak.store import InspectionStore, StoreError

        store_path.parent.mkdir(parents=True)
        store_path.write_text("{not json")

        with pytest.raises(StoreError):
            InspectionStore.open(store_path)

    def test_no_temp_files_left(self, store_path):
        """Test atomic writes clean up after themselves."""
        from beespeak.store import InspectionStore

        store = InspectionStore(store_path)
        store.add_apiary("Home")
        store.add_apiary("Away")

        assert [p.name for p in store_path.parent.iterdir()] == ["beespeak.json"]

    def test_failed_write_leaves_store_unchanged(self, store_path):
        """Test a record whose write failed is not kept, so a retry stores it once."""
        from beespeak.store import InspectionStore, StoreError
        from beespeak.types import Inspection

        store = InspectionStore(store_path)
        hive = store.add_hive("Hive 1")
        inspection = Inspection(hive_id=hive.id, queen_seen=True)

        with patch("beespeak.store.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(StoreError):
                store.save_inspection(inspection)

        assert store.inspections_for(hive.id) == []
        assert [p.name for p in store_path.parent.iterdir()] == ["beespeak.json"]

        store.save_inspection(inspection)

        assert len(store.inspections_for(hive.id)) == 1
        assert len(InspectionStore.open(store_path).inspections_for(hive.id)) == 1

    def test_failed_delete_keeps_records(self, store_path):
        from beespeak.store import InspectionStore, StoreError
        from beespeak.types import Inspection

        store = InspectionStore(store_path)
        hive = store.add_hive("Hive 1")
        store.save_inspection(Inspection(hive_id=hive.id))

        with patch("beespeak.store.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(StoreError):
                store.delete_hive(hive.id)

        assert store.get_hive(hive.id) is not None
        assert len(store.inspections_for(hive.id)) == 1

    @pytest.mark.parametrize("target", ["tempfile.mkstemp", "Path.mkdir"])
    def test_unwritable_directory_raises_store_error(self, store_path, target):
        """Test OS errors before the temp file exists still surface as StoreError."""
        from beespeak.store import InspectionStore, StoreError

        store = InspectionStore(store_path)

        with patch(f"beespeak.store.{target}", side_effect=PermissionError("denied")):
            with pytest.raises(StoreError) as exc_info:
                store.add_apiary("Home")

        assert "denied" in str(exc_info.value)
        assert store.list_apiaries() == []

    @pytest.mark.parametrize("collection,record", [
        ("inspections", {"hive_id": "h1", "date": "last tuesday"}),
        ("inspections", {"hive_id": "h1", "varroa_level": "Severe"}),
        ("treatments", {"product": "Apivar", "dosage": "2 strips"}),
        ("hives", "Hive 1"),
    ])
    def test_bad_record_raises(self, store_path, collection, record):
        """Test well-formed JSON with an unusable record raises StoreError."""
        from beespeak.store import InspectionStore, StoreError

        store_path.parent.mkdir(parents=True)
        store_path.write_text(json.dumps({collection: [record]}))

        with pytest.raises(StoreError) as exc_info:
            InspectionStore.open(store_path)
        assert collection in str(exc_info.value)

    def test_non_object_document_raises(self, store_path):
        from beespeak.store import InspectionStore, StoreError

        store_path.parent.mkdir(parents=True)
        store_path.write_text("[]")

        with pytest.raises(StoreError):
            InspectionStore.open(store_path)


class TestHives:
    """Tests for apiaries and hives."""

    def test_hive_qr_defaults_to_id(self, store_path):
        """Test hives without a label are found by their id."""
        from beespeak.store import InspectionStore

        store = InspectionStore(store_path)
        hive = store.add_hive("Nuc")

        assert hive.qr_string == hive.id
        assert store.find_hive_by_qr(f"  {hive.id}\n") is hive

    def test_unknown_apiary_rejected(self, store_path):
        """Test hives must reference an existing apiary."""
        from beespeak.store import InspectionStore, ApiaryNotFoundError

        store = InspectionStore(store_path)
        with pytest.raises(ApiaryNotFoundError):
            store.add_hive("Hive", apiary_id="nowhere")

    def test_list_sorted_by_name(self, store_path):
        """Test listings are alphabetical."""
        from beespeak.store import InspectionStore

        store = InspectionStore(store_path)
        store.add_apiary("Orchard")
        store.add_apiary("Allotment")
        home = store.add_apiary("Home")
        store.add_hive("Hive 2", apiary_id=home.id)
        store.add_hive("Hive 1", apiary_id=home.id)
        store.add_hive("Loose")

        assert [a.name for a in store.list_apiaries()] == ["Allotment", "Home", "Orchard"]
        assert [h.name for h in store.list_hives(home.id)] == ["Hive 1", "Hive 2"]
        assert len(store.list_hives()) == 3

    def test_delete_apiary_cascades(self, store_path):
        """Test deleting an apiary removes its hives and their records."""
        from beespeak.store import InspectionStore
        from beespeak.types import Inspection, Harvest

        store = InspectionStore(store_path)
        apiary = store.add_apiary("Home")
        hive = store.add_hive("Hive 1", apiary_id=apiary.id)
        other = store.add_hive("Loose")
        store.save_inspection(Inspection(hive_id=hive.id))
        store.add_harvest(Harvest(hive_id=hive.id, weight_kg=12.5))
        store.save_inspection(Inspection(hive_id=other.id))

        store.delete_apiary(apiary.id)

        assert store.get_hive(hive.id) is None
        assert store.inspections_for(hive.id) == []
        assert store.harvests_for(hive.id) == []
        assert len(store.inspections_for(other.id)) == 1

    def test_delete_unknown_apiary(self, store_path):
        from beespeak.store import InspectionStore, ApiaryNotFoundError

        with pytest.raises(ApiaryNotFoundError):
            InspectionStore(store_path).delete_apiary("nowhere")


class TestRecords:
    """Tests for inspections, treatments and harvests."""

    def test_records_need_a_hive(self, store_path):
        """Test records for unknown hives are rejected."""
        from beespeak.store import InspectionStore, HiveNotFoundError, StoreError
        from beespeak.types import Inspection, Treatment, Harvest

        store = InspectionStore(store_path)

        with pytest.raises(HiveNotFoundError) as exc_info:
            store.save_inspection(Inspection(hive_id="ghost"))
        assert exc_info.value.hive_id == "ghost"
        assert isinstance(exc_info.value, StoreError)

        with pytest.raises(HiveNotFoundError):
            store.add_treatment(Treatment(hive_id="ghost", product="Formic", dosage="1"))
        with pytest.raises(HiveNotFoundError):
            store.add_harvest(Harvest(hive_id="ghost", weight_kg=1.0))

    def test_newest_first(self, store_path):
        """Test per-hive records are listed newest first."""
        from beespeak.store import InspectionStore
        from beespeak.types import Inspection

        store = InspectionStore(store_path)
        hive = store.add_hive("Hive 1")
        now = datetime.now()
        store.save_inspection(Inspection(hive_id=hive.id, date=now - timedelta(days=14), transcript="old"))
        store.save_inspection(Inspection(hive_id=hive.id, date=now, transcript="new"))
        store.save_inspection(Inspection(hive_id=hive.id, date=now - timedelta(days=7), transcript="mid"))

        assert [i.transcript for i in store.inspections_for(hive.id)] == ["new", "mid", "old"]


class TestExportJson:
    """Tests for export_json."""

    def test_nested_document(self, store_path):
        """Test apiaries contain hives which contain their records."""
        from beespeak.store import InspectionStore
        from beespeak.types import Inspection, Treatment, Harvest, VarroaLevel

        store = InspectionStore(store_path)
        apiary = store.add_apiary("Home", notes="south fence")
        hive = store.add_hive("Hive 1", apiary_id=apiary.id, qr_string="H1", type="Top Bar")
        store.save_inspection(Inspection(hive_id=hive.id, queen_seen=True, varroa_level=VarroaLevel.LOW,
                                         tags=["calm"]))
        store.add_treatment(Treatment(hive_id=hive.id, product="Oxalic", dosage="5ml"))
        store.add_harvest(Harvest(hive_id=hive.id, weight_kg=8.0))
        store.add_hive("Swarm box")

        exported = json.loads(store.export_json(export_date=datetime(2026, 6, 1, 12, 0)))

        assert exported["exportDate"] == "2026-06-01T12:00:00"
        assert len(exported["apiaries"]) == 1
        home = exported["apiaries"][0]
        assert home["name"] == "Home"
        assert home["notes"] == "south fence"
        exported_hive = home["hives"][0]
        assert exported_hive["qrString"] == "H1"
        assert exported_hive["type"] == "Top Bar"
        inspection = exported_hive["inspections"][0]
        assert inspection["queenSeen"] is True
        assert inspection["eggsPresent"] is None
        assert inspection["varroaLevel"] == "Low"
        assert inspection["tags"] == ["calm"]
        assert exported_hive["treatments"][0]["nextCheckDate"] is None
        assert exported_hive["harvests"][0]["weightKg"] == 8.0
        assert [h["name"] for h in exported["unassignedHives"]] == ["Swarm box"]

    def test_empty_store(self, store_path):
        from beespeak.store import InspectionStore

        exported = json.loads(InspectionStore(store_path).export_json())

        assert exported["apiaries"] == []
        assert exported["unassignedHives"] == []
        assert "exportDate" in exported


class TestDeletes:
    """Tests for hive and treatment deletes."""

    def test_delete_hive_cascades(self, store_path):
        """Test deleting a hive removes its records and returns its treatments."""
        from beespeak.store import InspectionStore
        from beespeak.types import Inspection, Treatment, Harvest

        store = InspectionStore(store_path)
        apiary = store.add_apiary("Home")
        hive = store.add_hive("Hive 1", apiary_id=apiary.id)
        other = store.add_hive("Hive 2", apiary_id=apiary.id)
        store.save_inspection(Inspection(hive_id=hive.id))
        treatment = store.add_treatment(Treatment(hive_id=hive.id, product="Apivar", dosage="2 strips"))
        store.add_harvest(Harvest(hive_id=hive.id, weight_kg=3.0))
        store.add_treatment(Treatment(hive_id=other.id, product="Formic", dosage="1 pad"))

        removed = store.delete_hive(hive.id)

        assert [t.id for t in removed] == [treatment.id]
        assert store.get_hive(hive.id) is None
        assert store.get_apiary(apiary.id) is not None
        assert store.inspections_for(hive.id) == []
        assert store.harvests_for(hive.id) == []
        assert [t.product for t in InspectionStore.open(store_path).list_treatments()] == ["Formic"]

    def test_delete_unknown_hive(self, store_path):
        from beespeak.store import InspectionStore, HiveNotFoundError

        with pytest.raises(HiveNotFoundError):
            InspectionStore(store_path).delete_hive("ghost")

    def test_delete_treatment(self, store_path):
        from beespeak.store import InspectionStore
        from beespeak.types import Treatment

        store = InspectionStore(store_path)
        hive = store.add_hive("Hive 1")
        treatment = store.add_treatment(Treatment(hive_id=hive.id, product="Apivar", dosage="2 strips"))

        assert store.delete_treatment(treatment.id) is treatment
        assert store.treatments_for(hive.id) == []

    def test_delete_unknown_treatment(self, store_path):
        from beespeak.store import InspectionStore, TreatmentNotFoundError, StoreError

        with pytest.raises(TreatmentNotFoundError) as exc_info:
            InspectionStore(store_path).delete_treatment("t-9")
        assert exc_info.value.treatment_id == "t-9"
        assert isinstance(exc_info.value, StoreError)

    def test_delete_apiary_returns_treatments(self, store_path):
        from beespeak.store import InspectionStore
        from beespeak.types import Treatment

        store = InspectionStore(store_path)
        apiary = store.add_apiary("Home")
        hive = store.add_hive("Hive 1", apiary_id=apiary.id)
        treatment = store.add_treatment(Treatment(hive_id=hive.id, product="Apivar", dosage="2 strips"))

        assert store.delete_apiary(apiary.id) == [treatment]


class TestDashboard:
    """Tests for summary and upcoming_treatments."""

    def test_summary(self, store_path):
        from beespeak.store import InspectionStore
        from beespeak.types import Inspection, Treatment, Harvest, VarroaLevel

        now = datetime(2026, 6, 1, 12, 0)
        store = InspectionStore(store_path)
        apiary = store.add_apiary("Home")
        hive = store.add_hive("Hive 1", apiary_id=apiary.id)
        loose = store.add_hive("Swarm box")
        for days, level in enumerate([VarroaLevel.LOW, VarroaLevel.MEDIUM, VarroaLevel.HIGH, VarroaLevel.NONE]):
            store.save_inspection(Inspection(hive_id=hive.id, date=now - timedelta(days=days), varroa_level=level))
        store.save_inspection(Inspection(hive_id=loose.id, date=now - timedelta(days=30)))
        store.add_harvest(Harvest(hive_id=hive.id, weight_kg=10.5))
        store.add_harvest(Harvest(hive_id=loose.id, weight_kg=2.0))
        store.add_treatment(Treatment(hive_id=hive.id, product="Past", dosage="1",
                                      next_check_date=now - timedelta(days=1)))
        store.add_treatment(Treatment(hive_id=hive.id, product="Later", dosage="1",
                                      next_check_date=now + timedelta(days=14)))
        store.add_treatment(Treatment(hive_id=hive.id, product="Soon", dosage="1",
                                      next_check_date=now + timedelta(days=2)))

        summary = store.summary(now=now, limit=3)

        assert summary.total_hives == 2
        assert summary.total_inspections == 5
        assert summary.varroa_alerts == 2
        assert summary.total_harvest_kg == pytest.approx(12.5)
        assert [i.varroa_level for i in summary.recent_inspections] == [
            VarroaLevel.LOW, VarroaLevel.MEDIUM, VarroaLevel.HIGH,
        ]
        assert [t.product for t in summary.upcoming_treatments] == ["Soon", "Later"]

    def test_empty_summary(self, store_path):
        from beespeak.store import InspectionStore

        summary = InspectionStore(store_path).summary()

        assert summary.total_hives == 0
        assert summary.total_harvest_kg == 0
        assert summary.recent_inspections == []
        assert summary.upcoming_treatments == []

    def test_upcoming_skips_undated(self, store_path):
        from beespeak.store import InspectionStore
        from beespeak.types import Treatment

        now = datetime(2026, 6, 1)
        store = InspectionStore(store_path)
        hive = store.add_hive("Hive 1")
        store.add_treatment(Treatment(hive_id=hive.id, product="Undated", dosage="1"))
        store.add_treatment(Treatment(hive_id=hive.id, product="Due now", dosage="1", next_check_date=now))

        assert [t.product for t in store.upcoming_treatments(now)] == ["Due now"]
