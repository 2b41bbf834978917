import json
import unittest

from sqlalchemy import update

from inventory_fixtures import InventoryDatabase, seed_equipment, seed_location, seed_sector

from models.inventory_models import Equipment, Sector, Tracking
from services import reconciliation_service, report_service, user_access_service
from services.errors import InvalidMovement, NotFound
from services.qr_service import build_lookup_payload, parse_serial_from_qr, render_label_png, resolve_scan


def _checkout(sector_id, sector_name, responsible, quantity, status="saida"):
    return Tracking(
        Status=status,
        Quantity=quantity,
        SectorID=sector_id,
        Sector=Sector(SectorID=sector_id, SectorName=sector_name) if sector_id else None,
        ResponsiblePerson=responsible,
    )


class ReportAggregateTests(unittest.TestCase):
    def test_status_counts_include_every_status(self):
        records = [_checkout(None, None, "Ana", 1), _checkout(None, None, "Ana", 2, status="danificado")]
        self.assertEqual(
            report_service.status_counts(records),
            {"saida": 1, "manutencao": 0, "danificado": 1, "devolucao": 0},
        )

    def test_top_responsible_counts_checkouts_only_and_first_wins_ties(self):
        records = [
            _checkout(1, "TI", "Bruno", 2),
            _checkout(1, "TI", "Ana", 2),
            _checkout(1, "TI", "Ana", 9, status="devolucao"),
            _checkout(2, "RH", "Carla", 5),
            _checkout(None, None, None, 1),
        ]
        rows = report_service.top_responsible_by_sector(records)
        self.assertEqual(
            rows,
            [
                {"sectorID": 2, "sector": "RH", "responsible": "Carla", "quantity": 5},
                {"sectorID": 1, "sector": "TI", "responsible": "Bruno", "quantity": 2},
                {"sectorID": None, "sector": "Sem setor", "responsible": "Nao informado", "quantity": 1},
            ],
        )

    def test_quantity_by_sector_buckets_missing_sector(self):
        records = [_checkout(1, "TI", "Ana", 2), _checkout(1, "TI", "Bia", 3), _checkout(None, None, "Caio", 4)]
        totals = {row["name"]: row["quantity"] for row in report_service.quantity_by_sector(records)}
        self.assertEqual(totals, {"TI": 5, "Sem setor": 4})


class ReportDatabaseTests(unittest.TestCase):
    def setUp(self):
        self.database = InventoryDatabase()
        self.db = self.database.session()

    def tearDown(self):
        self.db.close()
        self.database.close()

    def test_movement_report_and_low_stock(self):
        mouse = seed_equipment(self.db, name="Mouse", quantity=6)
        seed_equipment(self.db, name="Monitor", quantity=20)
        sector_id = seed_sector(self.db, "Comercial")
        location_id = seed_location(self.db, "Andar 3")
        reconciliation_service.request_movement(
            self.db,
            mouse,
            "saida",
            2,
            {"sectorID": sector_id, "locationID": location_id, "responsiblePerson": "Davi"},
        )
        report = report_service.build_movement_report(self.db)
        self.assertEqual(report["totalMovements"], 1)
        self.assertEqual(report["statusCounts"]["saida"], 1)
        self.assertEqual(report["byLocation"][0]["name"], "Andar 3")
        self.assertEqual(report["topResponsibleBySector"][0]["responsible"], "Davi")

        low = report_service.low_stock_items(self.db, 5)
        self.assertEqual([item.Name for item in low], ["Mouse"])

    def test_verify_balances_detects_direct_quantity_writes(self):
        equipment_id = seed_equipment(self.db, quantity=5)
        reconciliation_service.request_movement(self.db, equipment_id, "saida", 2)
        self.assertTrue(all(check.ok for check in report_service.verify_balances(self.db)))

        self.db.execute(update(Equipment).values(AvailableQuantity=9))
        self.db.commit()
        check = report_service.verify_balances(self.db)[0]
        self.assertFalse(check.ok)
        self.assertEqual(check.expected_quantity, 3)
        self.assertEqual(report_service.serialize_balance_check(check)["availableQuantity"], 9)


class QrParsingTests(unittest.TestCase):
    def test_json_payload_keys(self):
        self.assertEqual(parse_serial_from_qr('{"serial_number": " SN-1 "}'), "SN-1")
        self.assertEqual(parse_serial_from_qr('{"numeroSerie": "SN-2", "name": "x"}'), "SN-2")
        self.assertEqual(parse_serial_from_qr('{"id": 4, "serialNumber": "SN-3"}'), "SN-3")

    def test_text_patterns_and_raw_value(self):
        self.assertEqual(parse_serial_from_qr("Serial: ABC 123"), "ABC 123")
        self.assertEqual(parse_serial_from_qr("numero_serie=XZ-9"), "XZ-9")
        self.assertEqual(parse_serial_from_qr("  RAW-77  "), "RAW-77")
        self.assertEqual(parse_serial_from_qr(""), "")
        self.assertEqual(parse_serial_from_qr(None), "")


class QrLookupTests(unittest.TestCase):
    def setUp(self):
        self.database = InventoryDatabase()
        self.db = self.database.session()

    def tearDown(self):
        self.db.close()
        self.database.close()

    def test_lookup_payload_and_label(self):
        equipment_id = seed_equipment(self.db, name="Hub USB", serial="HB-3", quantity=2)
        payload = build_lookup_payload(self.db, equipment_id)
        self.assertEqual(payload["id"], equipment_id)
        self.assertEqual(payload["serialNumber"], "HB-3")
        self.assertEqual(payload["availableQuantity"], 2)
        self.assertTrue(render_label_png(payload).startswith(b"\x89PNG"))

    def test_resolve_scan_by_serial_with_prefill(self):
        equipment_id = seed_equipment(self.db, name="Hub USB", serial="HB-3")
        sector_id = seed_sector(self.db, "Suporte")
        reconciliation_service.request_movement(
            self.db, equipment_id, "saida", 1, {"sectorID": sector_id, "responsiblePerson": "Igor"}
        )
        result = resolve_scan(self.db, json.dumps(build_lookup_payload(self.db, equipment_id)))
        self.assertEqual(result["equipment"]["id"], equipment_id)
        self.assertEqual(result["lastDescriptors"]["responsiblePerson"], "Igor")

        result = resolve_scan(self.db, "serial: hb-3")
        self.assertEqual(result["equipment"]["id"], equipment_id)

    def test_resolve_scan_falls_back_to_label_id(self):
        equipment_id = seed_equipment(self.db, name="Cabo HDMI", serial=None)
        result = resolve_scan(self.db, json.dumps(build_lookup_payload(self.db, equipment_id)))
        self.assertEqual(result["equipment"]["id"], equipment_id)
        self.assertEqual(result["lastDescriptors"], {})

    def test_resolve_scan_errors(self):
        with self.assertRaises(InvalidMovement):
            resolve_scan(self.db, "   ")
        with self.assertRaises(NotFound):
            resolve_scan(self.db, "NOPE-1")


class SessionTokenTests(unittest.TestCase):
    def test_round_trip(self):
        token = user_access_service.create_session({"userID": "u-1", "email": "ana@example.com"})
        session = user_access_service.get_session(token)
        self.assertEqual(session["userID"], "u-1")
        self.assertEqual(user_access_service.operator_label(session), "ana")

    def test_rejects_tampered_expired_and_malformed_tokens(self):
        token = user_access_service.create_session({"userID": "u-1"})
        body, signature = token.split(".", 1)
        forged = user_access_service.create_session({"userID": "admin"}).split(".", 1)[0]
        self.assertIsNone(user_access_service.get_session(f"{forged}.{signature}"))
        self.assertIsNone(user_access_service.get_session(user_access_service.create_session({"userID": "u-1"}, ttl_seconds=-1)))
        self.assertIsNone(user_access_service.get_session(user_access_service.create_session({"email": "x@y"})))
        self.assertIsNone(user_access_service.get_session("not-a-token"))
        self.assertIsNone(user_access_service.get_session(f"{body}.%%%"))
        self.assertIsNone(user_access_service.get_session(None))


class UserRoleTests(unittest.TestCase):
    def setUp(self):
        self.database = InventoryDatabase()
        self.db = self.database.session()

    def tearDown(self):
        self.db.close()
        self.database.close()

    def test_unprovisioned_user_is_reader(self):
        access = user_access_service.get_user_role(self.db, "ghost")
        self.assertEqual(access["role"], "leitor")
        self.assertFalse(access["isProvisioned"])
        self.assertFalse(access["rights"]["edit"])

    def test_upsert_list_and_delete(self):
        user_access_service.upsert_user_role(self.db, "u-7", "editor", "bia@example.com")
        user_access_service.upsert_user_role(self.db, "u-7", "desenvolvedor")
        self.db.commit()
        access = user_access_service.get_user_role(self.db, "u-7")
        self.assertEqual(access["role"], "desenvolvedor")
        self.assertEqual(access["email"], "bia@example.com")
        self.assertTrue(access["rights"]["manageRoles"])
        self.assertEqual([row["userID"] for row in user_access_service.list_user_roles(self.db)], ["u-7"])

        with self.assertRaises(ValueError):
            user_access_service.upsert_user_role(self.db, "u-7", "admin")

        self.assertTrue(user_access_service.delete_user_role(self.db, "u-7"))
        self.assertFalse(user_access_service.delete_user_role(self.db, "u-7"))


if __name__ == "__main__":
    unittest.main()
