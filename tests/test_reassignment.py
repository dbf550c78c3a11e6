import unittest

import database
from errors import InvalidLeaveTransition, LeaveNotFound, SubstituteNotFound
from generation import generate_timetable
from models import PlacementRecord, ReassignmentOverlay
from reassignment import (ReassignmentStore, approve_leave, find_substitute, merge_overlays,
                          reject_leave)

from support import SEMESTER, YEAR, TempDatabase, add_leave, add_reference_data, count


class TestLeaveApproval(unittest.TestCase):

    def setUp(self):
        self.tmp = TempDatabase()
        self.db = self.tmp.db
        add_reference_data(self.db)

    def tearDown(self):
        self.tmp.close()

    def test_find_substitute_same_department(self):
        # EMP001 sorts before EMP002
        self.assertEqual(find_substitute(self.db, 1, YEAR, SEMESTER), 2)
        self.assertEqual(find_substitute(self.db, 2, YEAR, SEMESTER), 1)
        with self.assertRaises(SubstituteNotFound):
            find_substitute(self.db, 3, YEAR, SEMESTER)

    def test_inactive_faculty_never_substitute(self):
        self.db.execute('UPDATE faculty SET is_active = 0 WHERE faculty_id = 2')
        self.db.commit()
        with self.assertRaises(SubstituteNotFound):
            find_substitute(self.db, 1, YEAR, SEMESTER)

    def test_approve_creates_overlay(self):
        leave_id = add_leave(self.db, 1)
        outcome = approve_leave(self.db, leave_id, 1, YEAR, SEMESTER)
        self.assertIsNone(outcome.warning)
        self.assertEqual(outcome.leave.status, 'approved')
        self.assertEqual(outcome.leave.approved_by, 1)
        self.assertEqual(outcome.overlay.substitute_faculty_id, 2)
        self.assertEqual(outcome.overlay.substitutions, {1: 4})

        duplicate = self.db.execute('SELECT * FROM course_assignments WHERE assignment_id = 4').fetchone()
        self.assertEqual(duplicate['faculty_id'], 2)
        self.assertEqual(duplicate['substitutes_for'], 1)
        self.assertEqual(duplicate['leave_id'], leave_id)

        stored = ReassignmentStore(self.db).get(leave_id)
        self.assertEqual(stored.substitutions, {1: 4})
        self.assertEqual((stored.start_date, stored.end_date), ('2024-09-02', '2024-09-06'))

    def test_explicit_substitute(self):
        leave_id = add_leave(self.db, 2, substitute_faculty_id=3)
        outcome = approve_leave(self.db, leave_id, 1, YEAR, SEMESTER)
        self.assertEqual(outcome.overlay.substitute_faculty_id, 3)

    def test_inactive_explicit_substitute_warns(self):
        self.db.execute('UPDATE faculty SET is_active = 0 WHERE faculty_id = 3')
        self.db.commit()
        leave_id = add_leave(self.db, 2, substitute_faculty_id=3)
        outcome = approve_leave(self.db, leave_id, 1, YEAR, SEMESTER)
        self.assertIsNone(outcome.overlay)
        self.assertIn('not an active faculty member', outcome.warning)

    def test_no_substitute_still_approves(self):
        leave_id = add_leave(self.db, 3)
        outcome = approve_leave(self.db, leave_id, 1, YEAR, SEMESTER)
        self.assertEqual(outcome.leave.status, 'approved')
        self.assertIsNone(outcome.overlay)
        self.assertIsNotNone(outcome.warning)
        self.assertEqual(count(self.db, 'course_assignments'), 3)
        self.assertEqual(count(self.db, 'reassignment_overlays'), 0)
        self.assertEqual(database.get_leave(self.db, leave_id).status, 'approved')

    def test_leave_with_nothing_to_cover(self):
        leave_id = add_leave(self.db, 1)
        outcome = approve_leave(self.db, leave_id, 1, YEAR, 2)
        self.assertIsNone(outcome.warning)
        self.assertEqual(outcome.overlay.substitutions, {})
        self.assertIsNone(outcome.overlay.substitute_faculty_id)
        self.assertEqual(count(self.db, 'course_assignments'), 3)
        self.assertEqual(count(self.db, 'reassignment_overlays'), 1)
        self.assertEqual(ReassignmentStore(self.db).get(leave_id).substitutions, {})

    def test_state_transitions(self):
        leave_id = add_leave(self.db, 1)
        approve_leave(self.db, leave_id, 1, YEAR, SEMESTER)
        with self.assertRaises(InvalidLeaveTransition):
            approve_leave(self.db, leave_id, 1, YEAR, SEMESTER)
        with self.assertRaises(InvalidLeaveTransition):
            reject_leave(self.db, leave_id, 1)
        self.assertEqual(count(self.db, 'course_assignments'), 4)

    def test_reject(self):
        leave_id = add_leave(self.db, 1)
        leave = reject_leave(self.db, leave_id, 1)
        self.assertEqual(leave.status, 'rejected')
        self.assertEqual(count(self.db, 'reassignment_overlays'), 0)
        with self.assertRaises(InvalidLeaveTransition):
            approve_leave(self.db, leave_id, 1, YEAR, SEMESTER)

    def test_unknown_leave(self):
        with self.assertRaises(LeaveNotFound):
            approve_leave(self.db, 42, 1, YEAR, SEMESTER)
        with self.assertRaises(LeaveNotFound):
            reject_leave(self.db, 42, 1)

    def test_run_is_left_untouched(self):
        outcome = generate_timetable(self.db, YEAR, SEMESTER)
        before = database.load_placements(self.db, outcome.run_id)
        approve_leave(self.db, add_leave(self.db, 1), 1, YEAR, SEMESTER)
        self.assertEqual(database.load_placements(self.db, outcome.run_id), before)

    def test_list_active_filters_by_date(self):
        approve_leave(self.db, add_leave(self.db, 1), 1, YEAR, SEMESTER)
        store = ReassignmentStore(self.db)
        self.assertEqual(len(store.list_active()), 1)
        self.assertEqual(len(store.list_active('2024-09-04')), 1)
        self.assertEqual(store.list_active('2024-10-01'), [])


class TestMergeOverlays(unittest.TestCase):

    def test_substitute_replaces_original_in_its_cell(self):
        placements = [
            PlacementRecord(1, 1, '08:30', '09:15', 1, 1, 1, 1, 1),
            PlacementRecord(1, 1, '09:15', '10:00', 2, 2, 2, 1, 1),
            PlacementRecord(1, 1, '08:30', '09:15', None, 3, 3, 2, 2, is_filler=True),
        ]
        overlay = ReassignmentOverlay(5, 1, 2, [1], [4])
        merged = merge_overlays(placements, [overlay])
        self.assertEqual(len(merged), 3)
        first = merged[0]
        self.assertEqual((first['batch_id'], first['faculty_id'], first['course_assignment_id']), (1, 2, 4))
        self.assertEqual(first['substitute_for_faculty_id'], 1)
        self.assertIsNone(merged[1]['substitute_for_faculty_id'])
        self.assertEqual(merged[2]['start_time'], '09:15')

    def test_no_overlays(self):
        placements = [PlacementRecord(1, 2, '08:30', '09:15', 1, 1, 1, 1, 1)]
        merged = merge_overlays(placements, [])
        self.assertEqual(merged, [dict(placements[0].as_dict(), substitute_for_faculty_id=None)])


if __name__ == '__main__':
    unittest.main()
