import sqlite3
import unittest
from unittest.mock import patch

import database
from errors import (InvalidRunState, NoAssignmentsFound, NoRoomsAvailable,
                    PersistenceFailure, RunInProgress, RunNotFound)
from generation import (_term_lock, data_hash_key, generate_timetable, get_active_run,
                        publish_run, select_active_run)
from models import GenerationConfig, TimetableRun

from support import SEMESTER, YEAR, TempDatabase, add_reference_data, count


class TestGenerateTimetable(unittest.TestCase):

    def setUp(self):
        self.tmp = TempDatabase()
        self.db = self.tmp.db
        add_reference_data(self.db)

    def tearDown(self):
        self.tmp.close()

    def test_run_is_persisted(self):
        outcome = generate_timetable(self.db, YEAR, SEMESTER)
        run = database.get_run(self.db, outcome.run_id)
        self.assertEqual(run.status, 'completed')
        self.assertIsNotNone(run.completed_at)
        self.assertEqual(run.generation_config['max_iterations'], 100)
        self.assertEqual(run.generation_log['statistics']['fully_scheduled'], 3)
        self.assertEqual(count(self.db, 'timetables'), len(outcome.placements))

        stored = database.load_placements(self.db, outcome.run_id)
        self.assertEqual(sorted(stored, key=lambda p: (p.cell, p.batch_id)),
                         sorted(outcome.placements, key=lambda p: (p.cell, p.batch_id)))

    def test_required_hours_scheduled(self):
        outcome = generate_timetable(self.db, YEAR, SEMESTER, GenerationConfig(synthesize_fillers=False,
                                                                               fill_gaps=False))
        self.assertEqual(len(outcome.placements), 8)
        self.assertEqual(outcome.statistics.fully_scheduled, 3)
        self.assertEqual(outcome.conflicts, [])

    def test_data_hash_stored(self):
        generate_timetable(self.db, YEAR, SEMESTER)
        expected = database.load_snapshot(self.db, YEAR, SEMESTER).content_hash()
        self.assertEqual(database.get_setting(self.db, data_hash_key(YEAR, SEMESTER)), expected)

    def test_no_assignments(self):
        with self.assertRaises(NoAssignmentsFound):
            generate_timetable(self.db, YEAR, 2)
        self.assertEqual(count(self.db, 'timetable_runs'), 0)

    def test_no_active_rooms(self):
        self.db.execute('UPDATE rooms SET is_active = 0')
        self.db.commit()
        with self.assertRaises(NoRoomsAvailable):
            generate_timetable(self.db, YEAR, SEMESTER)
        self.assertEqual(count(self.db, 'timetable_runs'), 0)

    def test_concurrent_run_rejected(self):
        lock = _term_lock(YEAR, SEMESTER)
        lock.acquire()
        try:
            with self.assertRaises(RunInProgress):
                generate_timetable(self.db, YEAR, SEMESTER)
        finally:
            lock.release()
        # other terms are unaffected
        with self.assertRaises(NoAssignmentsFound):
            generate_timetable(self.db, YEAR, 2)

    def test_persistence_failure_marks_run_failed(self):
        with patch('database.insert_placements', side_effect=sqlite3.OperationalError('disk I/O error')):
            with self.assertRaises(PersistenceFailure) as ctx:
                generate_timetable(self.db, YEAR, SEMESTER)
        run = database.get_run(self.db, ctx.exception.run_id)
        self.assertEqual(run.status, 'failed')
        self.assertIn('disk I/O error', run.generation_log['error'])
        self.assertEqual(count(self.db, 'timetables'), 0)
        self.assertIsNone(database.get_setting(self.db, data_hash_key(YEAR, SEMESTER)))

    def test_scheduler_error_marks_run_failed(self):
        with patch('scheduler.TimetableScheduler.fill_gaps', side_effect=RuntimeError('grid exploded')):
            with self.assertRaises(RuntimeError):
                generate_timetable(self.db, YEAR, SEMESTER)
        run = database.list_runs(self.db)[0]
        self.assertEqual(run.status, 'failed')
        self.assertIn('grid exploded', run.generation_log['error'])
        self.assertEqual(count(self.db, 'timetables'), 0)

    def test_substitute_duplicates_are_not_demand(self):
        self.db.execute('''INSERT INTO course_assignments
                           (course_id, faculty_id, batch_id, academic_year, semester, hours_per_week, substitutes_for)
                           VALUES (1, 2, 1, ?, ?, 3, 1)''', (YEAR, SEMESTER))
        self.db.commit()
        outcome = generate_timetable(self.db, YEAR, SEMESTER)
        self.assertEqual(outcome.statistics.total_assignments, 3)


class TestRunSelection(unittest.TestCase):

    def setUp(self):
        self.tmp = TempDatabase()
        self.db = self.tmp.db
        add_reference_data(self.db)

    def tearDown(self):
        self.tmp.close()

    def test_publish(self):
        run_id = generate_timetable(self.db, YEAR, SEMESTER).run_id
        run = publish_run(self.db, run_id)
        self.assertEqual(run.status, 'published')
        self.assertIsNotNone(run.published_at)
        # publishing twice is a no-op
        self.assertEqual(publish_run(self.db, run_id).published_at, run.published_at)

    def test_publish_errors(self):
        with self.assertRaises(RunNotFound):
            publish_run(self.db, 99)
        run_id = database.create_run(self.db, YEAR, SEMESTER, GenerationConfig())
        with self.assertRaises(InvalidRunState):
            publish_run(self.db, run_id)

    def test_active_run_prefers_published(self):
        first = generate_timetable(self.db, YEAR, SEMESTER).run_id
        second = generate_timetable(self.db, YEAR, SEMESTER).run_id
        self.assertEqual(get_active_run(self.db, YEAR, SEMESTER).id, second)
        publish_run(self.db, first)
        self.assertEqual(get_active_run(self.db, YEAR, SEMESTER).id, first)
        self.assertIsNone(get_active_run(self.db, YEAR, 2))

    def test_select_active_run_fallbacks(self):
        failed = TimetableRun(3, 'c', YEAR, SEMESTER, 'failed')
        completed = TimetableRun(2, 'b', YEAR, SEMESTER, 'completed')
        self.assertIs(select_active_run([failed, completed]), completed)
        self.assertIs(select_active_run([failed]), failed)
        self.assertIsNone(select_active_run([]))


if __name__ == '__main__':
    unittest.main()
