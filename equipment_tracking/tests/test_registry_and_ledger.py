import unittest
from datetime import date, datetime

from sqlalchemy import update

from inventory_fixtures import InventoryDatabase, seed_equipment, seed_sector

from models.inventory_models import Equipment, Tracking
from services import equipment_service, ledger_service
from services.errors import ConflictingWrite, DuplicateSerialNumber, InvalidMovement, InvalidQuantity, NotFound
from services.ledger_service import MovementFilter, MovementStatus


def _record(equipment_id, status="saida", quantity=1, **columns):
    return Tracking(EquipmentID=equipment_id, Status=status, Quantity=quantity, **columns)


class EquipmentRegistryTests(unittest.TestCase):
    def setUp(self):
        self.database = InventoryDatabase()
        self.db = self.database.session()

    def tearDown(self):
        self.db.close()
        self.database.close()

    def test_get_quantity_unknown_equipment(self):
        with self.assertRaises(NotFound):
            equipment_service.get_quantity(self.db, 999)

    def test_create_seeds_initial_and_available_quantity(self):
        equipment_id = seed_equipment(self.db, quantity=7)
        equipment = equipment_service.get_equipment(self.db, equipment_id)
        self.assertEqual(equipment.InitialQuantity, 7)
        self.assertEqual(equipment.AvailableQuantity, 7)
        self.assertEqual(equipment.CreatedBy, "seed")

    def test_create_rejects_negative_quantity_and_missing_name(self):
        with self.assertRaises(InvalidQuantity):
            equipment_service.create_equipment(self.db, {"name": "Cabo", "availableQuantity": -1})
        with self.assertRaises(InvalidMovement):
            equipment_service.create_equipment(self.db, {"name": "  ", "availableQuantity": 1})

    def test_set_quantity_rejects_negative(self):
        equipment_id = seed_equipment(self.db)
        with self.assertRaises(InvalidQuantity):
            equipment_service.set_quantity(self.db, equipment_id, -1)
        self.assertEqual(equipment_service.get_quantity(self.db, equipment_id), 10)

    def test_set_quantity_compare_and_swap(self):
        equipment_id = seed_equipment(self.db)
        equipment_service.set_quantity(self.db, equipment_id, 8, expected=10)
        self.db.commit()
        self.assertEqual(equipment_service.get_quantity(self.db, equipment_id), 8)

        with self.assertRaises(ConflictingWrite):
            equipment_service.set_quantity(self.db, equipment_id, 5, expected=10)
        self.db.rollback()
        self.assertEqual(equipment_service.get_quantity(self.db, equipment_id), 8)

    def test_set_quantity_unknown_equipment(self):
        with self.assertRaises(NotFound):
            equipment_service.set_quantity(self.db, 404, 1)

    def test_duplicate_serial_is_case_insensitive(self):
        seed_equipment(self.db, serial="AB-100")
        with self.assertRaises(DuplicateSerialNumber):
            equipment_service.create_equipment(self.db, {"name": "Teclado", "serialNumber": " ab-100 "})
        found = equipment_service.find_by_serial(self.db, "ab-100")
        self.assertIsNotNone(found)
        self.assertEqual(found.SerialNumber, "AB-100")

    def test_update_cannot_change_available_quantity(self):
        equipment_id = seed_equipment(self.db, quantity=4)
        equipment = equipment_service.get_equipment(self.db, equipment_id)
        with self.assertRaises(InvalidMovement):
            equipment_service.update_equipment(self.db, equipment, {"availableQuantity": 40})

        equipment_service.update_equipment(
            self.db,
            equipment,
            {"availableQuantity": 4, "description": "Sala 2", "imageUrl": "https://cdn.local/m.png"},
            operator="ana",
        )
        self.db.commit()
        refreshed = equipment_service.get_equipment(self.db, equipment_id)
        self.assertEqual(refreshed.Description, "Sala 2")
        self.assertEqual(refreshed.UpdatedBy, "ana")
        self.assertEqual(refreshed.AvailableQuantity, 4)

    def test_delete_refuses_equipment_with_history(self):
        with_history = seed_equipment(self.db, name="Monitor")
        without_history = seed_equipment(self.db, name="Webcam")
        ledger_service.append(self.db, _record(with_history))
        self.db.commit()

        with self.assertRaises(InvalidMovement):
            equipment_service.delete_equipment(self.db, equipment_service.get_equipment(self.db, with_history))

        equipment_service.delete_equipment(self.db, equipment_service.get_equipment(self.db, without_history))
        self.db.commit()
        self.assertIsNone(self.db.get(Equipment, without_history))

    def test_list_equipment_search_matches_name_or_serial(self):
        seed_equipment(self.db, name="Mouse sem fio", serial="MS-1")
        seed_equipment(self.db, name="Headset", serial="HS-77")
        names = [item.Name for item in equipment_service.list_equipment(self.db, search="hs-7")]
        self.assertEqual(names, ["Headset"])
        names = [item.Name for item in equipment_service.list_equipment(self.db, search="MOUSE")]
        self.assertEqual(names, ["Mouse sem fio"])


class MovementLedgerTests(unittest.TestCase):
    def setUp(self):
        self.database = InventoryDatabase()
        self.db = self.database.session()
        self.equipment_id = seed_equipment(self.db, name="Notebook", serial="NB-1")

    def tearDown(self):
        self.db.close()
        self.database.close()

    def test_append_rejects_non_positive_quantity(self):
        with self.assertRaises(InvalidQuantity):
            ledger_service.append(self.db, _record(self.equipment_id, quantity=0))

    def test_append_rejects_unknown_status(self):
        with self.assertRaises(InvalidMovement):
            ledger_service.append(self.db, _record(self.equipment_id, status="emprestado"))

    def test_list_orders_most_recent_first_with_insert_order_tiebreak(self):
        first = ledger_service.append(self.db, _record(self.equipment_id))
        second = ledger_service.append(self.db, _record(self.equipment_id, status="devolucao"))
        third = ledger_service.append(self.db, _record(self.equipment_id, status="manutencao"))
        same_instant = datetime(2025, 3, 1, 10, 0, 0)
        self.db.execute(update(Tracking).values(CreatedAt=same_instant))
        self.db.commit()

        ids = [record.TrackingID for record in ledger_service.list_movements(self.db)]
        self.assertEqual(ids, [third, second, first])

    def test_sequence_is_lazy_and_restartable(self):
        ledger_service.append(self.db, _record(self.equipment_id))
        self.db.commit()
        sequence = ledger_service.list_movements(self.db, MovementFilter(equipment_id=self.equipment_id))
        self.assertEqual(len(list(sequence)), 1)

        ledger_service.append(self.db, _record(self.equipment_id, status="devolucao"))
        self.db.commit()
        self.assertEqual(len(list(sequence)), 2)
        self.assertEqual(sequence.count(), 2)

    def test_filters_by_status_date_sector_and_search(self):
        other_id = seed_equipment(self.db, name="Projetor", serial="PJ-9")
        sector_id = seed_sector(self.db, "Financeiro")
        old = ledger_service.append(self.db, _record(self.equipment_id))
        recent = ledger_service.append(self.db, _record(self.equipment_id, status="manutencao", SectorID=sector_id))
        ledger_service.append(self.db, _record(other_id, status="devolucao"))
        self.db.execute(update(Tracking).where(Tracking.TrackingID == old).values(CreatedAt=datetime(2025, 1, 10, 9, 0)))
        self.db.execute(update(Tracking).where(Tracking.TrackingID == recent).values(CreatedAt=datetime(2025, 1, 12, 23, 30)))
        self.db.commit()

        by_status = ledger_service.list_movements(self.db, MovementFilter.build(status="manutencao"))
        self.assertEqual([record.TrackingID for record in by_status], [recent])

        # A bare end date covers the whole day.
        by_day = ledger_service.list_movements(
            self.db, MovementFilter.build(start=date(2025, 1, 12), end=date(2025, 1, 12))
        )
        self.assertEqual([record.TrackingID for record in by_day], [recent])

        by_sector = ledger_service.list_movements(self.db, MovementFilter.build(sector_id=sector_id))
        self.assertEqual([record.TrackingID for record in by_sector], [recent])

        by_search = ledger_service.list_movements(self.db, MovementFilter.build(search="pj-"))
        self.assertEqual([record.EquipmentID for record in by_search], [other_id])

        everything = ledger_service.list_movements(self.db, MovementFilter.build(status="all"))
        self.assertEqual(everything.count(), 3)

    def test_filter_rejects_inverted_range(self):
        with self.assertRaises(InvalidMovement):
            MovementFilter.build(start=datetime(2025, 2, 1), end=datetime(2025, 1, 1))

    def test_update_changes_descriptors_only(self):
        record_id = ledger_service.append(self.db, _record(self.equipment_id))
        ledger_service.update(self.db, record_id, {"responsiblePerson": "Joana", "notes": "Mesa 4"}, operator="op")
        self.db.commit()
        record = ledger_service.get_movement(self.db, record_id)
        self.assertEqual(record.ResponsiblePerson, "Joana")
        self.assertEqual(record.UpdatedBy, "op")
        with self.assertRaises(InvalidMovement):
            ledger_service.update(self.db, record_id, {"equipmentID": 2})
        with self.assertRaises(NotFound):
            ledger_service.update(self.db, 999, {"notes": "x"})

    def test_remove_unknown_record(self):
        with self.assertRaises(NotFound):
            ledger_service.remove(self.db, 12345)

    def test_latest_descriptors_prefill(self):
        self.assertEqual(ledger_service.latest_descriptors(self.db, self.equipment_id), {})
        sector_id = seed_sector(self.db, "RH")
        ledger_service.append(self.db, _record(self.equipment_id, ResponsiblePerson="Carlos"))
        ledger_service.append(
            self.db,
            _record(self.equipment_id, status="devolucao", SectorID=sector_id, ResponsiblePerson="Bia", ReceivedBy="Setup"),
        )
        self.db.commit()
        latest = ledger_service.latest_descriptors(self.db, self.equipment_id)
        self.assertEqual(latest["responsiblePerson"], "Bia")
        self.assertEqual(latest["sectorID"], sector_id)
        self.assertEqual(latest["receivedBy"], "Setup")


class PaginationTests(unittest.TestCase):
    def test_page_is_clamped_to_available_pages(self):
        result = ledger_service.paginate(range(45), page=99, page_size=20)
        self.assertEqual(result["page"], 3)
        self.assertEqual(result["totalPages"], 3)
        self.assertEqual(result["items"], list(range(40, 45)))

        result = ledger_service.paginate(range(45), page=0, page_size=20)
        self.assertEqual(result["page"], 1)
        self.assertEqual(result["items"], list(range(20)))

    def test_empty_sequence_has_one_page(self):
        result = ledger_service.paginate([], page=3, page_size=10)
        self.assertEqual(result["page"], 1)
        self.assertEqual(result["totalPages"], 1)
        self.assertEqual(result["totalRecords"], 0)
        self.assertEqual(result["items"], [])


class MovementStatusTests(unittest.TestCase):
    def test_delta_table(self):
        self.assertEqual(ledger_service.movement_delta("saida", 3), -3)
        self.assertEqual(ledger_service.movement_delta("manutencao", 2), -2)
        self.assertEqual(ledger_service.movement_delta("devolucao", 4), 4)
        self.assertEqual(ledger_service.movement_delta("danificado", 9), 0)

    def test_parse_normalises_case(self):
        self.assertIs(MovementStatus.parse(" SAIDA "), MovementStatus.SAIDA)
        with self.assertRaises(InvalidMovement):
            MovementStatus.parse("perdido")


if __name__ == "__main__":
    unittest.main()
