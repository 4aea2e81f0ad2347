from __future__ import annotations

import unittest
from unittest.mock import patch

from sqlalchemy import Update, func, select
from sqlalchemy.exc import OperationalError

from app.errors import StorageError, ValidationError
from app.models import AttendanceSession, OpenSession, ScanOutcome
from app.services import gate
from app.services.gate import bulk_close_sessions, scan_gate
from app.services.ledger import list_open_sessions
from tests.support import add_employee, ist, make_session_factory


class BulkGateOutTests(unittest.TestCase):
    def setUp(self) -> None:
        self.factory = make_session_factory()
        self.db = self.factory()
        self.e1 = add_employee(self.db, "SLP001")
        add_employee(self.db, "SLP002")
        add_employee(self.db, "SLP003")
        start = ist(2024, 1, 10, 9, 0)
        self.s1 = scan_gate(self.db, "SLP001", now_utc=start).session_id
        self.s2 = scan_gate(self.db, "SLP002", now_utc=start).session_id
        self.s3 = scan_gate(self.db, "SLP003", now_utc=start).session_id

    def tearDown(self) -> None:
        self.db.close()

    def test_duplicate_ids_are_counted_once(self) -> None:
        closed = bulk_close_sessions(self.db, [self.s1, self.s2, self.s1], now_utc=ist(2024, 1, 10, 19, 0))

        self.assertEqual(closed, 2)
        remaining = list_open_sessions(self.db, now_utc=ist(2024, 1, 10, 19, 0))
        self.assertEqual([row.session_id for row in remaining], [self.s3])

        closed_rows = self.db.scalars(
            select(AttendanceSession).where(AttendanceSession.id.in_([self.s1, self.s2]))
        ).all()
        for row in closed_rows:
            self.assertIsNotNone(row.gate_out_at)
            self.assertTrue(row.is_overtime)

    def test_already_closed_and_unknown_ids_are_skipped(self) -> None:
        out = scan_gate(self.db, "SLP001", now_utc=ist(2024, 1, 10, 13, 0))
        self.assertEqual(out.outcome, ScanOutcome.GATE_OUT)

        closed = bulk_close_sessions(self.db, [self.s1, self.s2, 999_999], now_utc=ist(2024, 1, 10, 14, 0))

        self.assertEqual(closed, 1)
        self.assertEqual(
            self.db.scalar(select(func.count()).select_from(OpenSession)),
            1,
        )

    def test_closed_employee_can_scan_in_again(self) -> None:
        bulk_close_sessions(self.db, [self.s2], now_utc=ist(2024, 1, 10, 18, 0))

        result = scan_gate(self.db, "SLP002", now_utc=ist(2024, 1, 11, 9, 0))

        self.assertEqual(result.outcome, ScanOutcome.GATE_IN)
        self.assertNotEqual(result.session_id, self.s2)

    def test_empty_selection_is_rejected(self) -> None:
        with self.assertRaises(ValidationError) as ctx:
            bulk_close_sessions(self.db, [])

        self.assertEqual(ctx.exception.code, "SESSION_IDS_REQUIRED")

    def test_storage_failure_mid_batch_closes_nothing(self) -> None:
        real_execute = self.db.execute
        updates: list[object] = []

        def _fail_second_update(statement, *args, **kwargs):  # type: ignore[no-untyped-def]
            if isinstance(statement, Update):
                updates.append(statement)
                if len(updates) == 2:
                    raise OperationalError("UPDATE attendance_sessions", {}, Exception("disk I/O error"))
            return real_execute(statement, *args, **kwargs)

        with patch.object(self.db, "execute", side_effect=_fail_second_update):
            with self.assertRaises(StorageError):
                bulk_close_sessions(self.db, [self.s1, self.s2, self.s3], now_utc=ist(2024, 1, 10, 18, 0))

        self.assertEqual(len(updates), 2)
        self.assertEqual(self.db.scalar(select(func.count()).select_from(OpenSession)), 3)
        self.assertEqual(
            self.db.scalar(
                select(func.count()).select_from(AttendanceSession).where(AttendanceSession.gate_out_at.is_(None))
            ),
            3,
        )

        out = scan_gate(self.db, "SLP001", now_utc=ist(2024, 1, 10, 19, 0))
        self.assertEqual(out.outcome, ScanOutcome.GATE_OUT)
        self.assertEqual(out.session_id, self.s1)

    def test_session_closed_after_loading_is_not_counted(self) -> None:
        real_load = gate.load_sessions_by_ids
        other_db = self.factory()
        reentry: list[int | None] = []

        def _load_then_cycle_elsewhere(db, session_ids):  # type: ignore[no-untyped-def]
            loaded = real_load(db, session_ids)
            out = scan_gate(other_db, "SLP001", now_utc=ist(2024, 1, 10, 18, 0))
            back_in = scan_gate(other_db, "SLP001", now_utc=ist(2024, 1, 10, 19, 30))
            self.assertEqual(out.outcome, ScanOutcome.GATE_OUT)
            self.assertEqual(back_in.outcome, ScanOutcome.GATE_IN)
            reentry.append(back_in.session_id)
            return loaded

        try:
            with patch("app.services.gate.load_sessions_by_ids", side_effect=_load_then_cycle_elsewhere):
                closed = bulk_close_sessions(self.db, [self.s1], now_utc=ist(2024, 1, 10, 20, 0))
        finally:
            other_db.close()

        self.assertEqual(closed, 0)
        new_session_id = reentry[0]
        self.assertNotEqual(new_session_id, self.s1)
        self.assertEqual(
            self.db.scalar(select(OpenSession.session_id).where(OpenSession.employee_id == self.e1.id)),
            new_session_id,
        )
        self.assertIsNone(
            self.db.scalar(select(AttendanceSession.gate_out_at).where(AttendanceSession.id == new_session_id))
        )


if __name__ == "__main__":
    unittest.main()
