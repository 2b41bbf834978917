import io
import unittest
from contextlib import redirect_stdout

from sqlalchemy import update

from inventory_fixtures import InventoryDatabase, seed_equipment

from models.inventory_models import Equipment
from scripts import grant_role, ledger_check
from services import reconciliation_service
from services.user_access_service import get_session, get_user_role


class LedgerCheckScriptTests(unittest.TestCase):
    def setUp(self):
        self.database = InventoryDatabase()
        self.db = self.database.session()

    def tearDown(self):
        self.db.close()
        self.database.close()

    def _run(self):
        out = io.StringIO()
        with redirect_stdout(out):
            code = ledger_check.main(["--db-url", self.database.url])
        return code, out.getvalue()

    def test_consistent_database_passes(self):
        equipment_id = seed_equipment(self.db, quantity=3)
        record = reconciliation_service.request_movement(self.db, equipment_id, "saida", 2)
        reconciliation_service.retire_equipment(self.db, record.TrackingID, "damaged")
        code, output = self._run()
        self.assertEqual(code, 0, output)
        self.assertIn("[OK] tracking:closed_by_retirement", output)
        self.assertNotIn("[FAIL]", output)

    def test_drifted_quantity_fails(self):
        seed_equipment(self.db, name="Cabo", quantity=3)
        self.db.execute(update(Equipment).values(AvailableQuantity=1))
        self.db.commit()
        code, output = self._run()
        self.assertEqual(code, 1)
        self.assertIn("[FAIL] balance:", output)

    def test_missing_url(self):
        with redirect_stdout(io.StringIO()):
            self.assertEqual(ledger_check.main(["--db-url", ""]), 2)


class GrantRoleScriptTests(unittest.TestCase):
    def setUp(self):
        self.database = InventoryDatabase()

    def tearDown(self):
        self.database.close()

    def test_grant_prints_usable_token(self):
        out = io.StringIO()
        with redirect_stdout(out):
            code = grant_role.main(
                ["--user-id", "op-3", "--role", "editor", "--email", "op3@example.com", "--db-url", self.database.url]
            )
        self.assertEqual(code, 0)
        lines = out.getvalue().strip().splitlines()
        self.assertTrue(lines[0].startswith("OK user_id=op-3 role=editor"))
        self.assertEqual(get_session(lines[-1])["userID"], "op-3")
        with self.database.session() as db:
            self.assertEqual(get_user_role(db, "op-3")["role"], "editor")


if __name__ == "__main__":
    unittest.main()
