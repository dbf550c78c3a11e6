"""Run lifecycle around the scheduler: preconditions, locking, persistence."""
from collections import namedtuple
import logging
import sqlite3
import threading

import database
from errors import (InvalidRunState, NoAssignmentsFound, NoRoomsAvailable,
                    PersistenceFailure, RunInProgress, RunNotFound)
from models import GenerationConfig
from scheduler import TimetableScheduler
from time_grid import DEFAULT_GRID

logger = logging.getLogger(__name__)

GenerationOutcome = namedtuple('GenerationOutcome', 'run_id statistics placements conflicts')

_locks = {}
_locks_guard = threading.Lock()


def _term_lock(academic_year, semester):
    with _locks_guard:
        return _locks.setdefault((academic_year, int(semester)), threading.Lock())


def data_hash_key(academic_year, semester):
    return f'data_hash:{academic_year}:{semester}'


def generate_timetable(db, academic_year, semester, config=None, generated_by=None, grid=DEFAULT_GRID):
    """Generate and persist a new run for one academic year / semester.

    Raises NoAssignmentsFound or NoRoomsAvailable before any run row exists,
    RunInProgress if another run for the same term is still going, and
    PersistenceFailure (after marking the run failed) if writing placements fails.
    Any other error inside the run also marks it failed and is re-raised.
    """
    if config is None:
        config = GenerationConfig()
    lock = _term_lock(academic_year, semester)
    if not lock.acquire(blocking=False):
        raise RunInProgress(academic_year, semester)
    try:
        return _generate(db, academic_year, semester, config, generated_by, grid)
    finally:
        lock.release()


def _generate(db, academic_year, semester, config, generated_by, grid):
    logger.info('Starting timetable generation for %s semester %s (%s)',
                academic_year, semester, config.algorithm)
    snapshot = database.load_snapshot(db, academic_year, semester)
    if not snapshot.assignments:
        raise NoAssignmentsFound(academic_year, semester)
    if not snapshot.rooms:
        raise NoRoomsAvailable()
    logger.info('Found %d assignments and %d rooms', len(snapshot.assignments), len(snapshot.rooms))

    run_id = database.create_run(db, academic_year, semester, config, generated_by)
    log = {}
    try:
        result = TimetableScheduler(snapshot, config, grid).run(run_id)
        log = {
            'statistics': result.statistics.as_dict(),
            'conflicts': [c.as_dict() for c in result.conflicts],
        }
        database.insert_placements(db, run_id, result.placements)
        database.finish_run(db, run_id, 'completed', log)
    except sqlite3.Error as e:
        _fail_run(db, run_id, log, e)
        raise PersistenceFailure(run_id, e) from e
    except Exception as e:
        _fail_run(db, run_id, log, e)
        raise

    database.set_setting(db, data_hash_key(academic_year, semester), snapshot.content_hash())
    logger.info('Run %s completed with %d slots', run_id, len(result.placements))
    return GenerationOutcome(run_id, result.statistics, result.placements, result.conflicts)


def _fail_run(db, run_id, log, error):
    db.rollback()
    logger.error('Run %s failed: %s', run_id, error)
    try:
        database.finish_run(db, run_id, 'failed', dict(log, error=str(error)))
    except sqlite3.Error:
        logger.exception('Could not mark run %s as failed', run_id)


def publish_run(db, run_id):
    run = database.get_run(db, run_id)
    if run is None:
        raise RunNotFound(run_id)
    if run.status == 'published':
        return run
    if run.status != 'completed':
        raise InvalidRunState(f'Run {run_id} is {run.status}; only completed runs can be published')
    db.execute("UPDATE timetable_runs SET status = 'published', published_at = ? WHERE run_id = ?",
               (database.now(), run_id))
    db.commit()
    logger.info('Published run %s', run_id)
    return database.get_run(db, run_id)


def select_active_run(runs):
    """Latest published run, else latest completed, else the most recent one.

    ``runs`` must be ordered newest first.
    """
    for status in ('published', 'completed'):
        for run in runs:
            if run.status == status:
                return run
    return runs[0] if runs else None


def get_active_run(db, academic_year=None, semester=None):
    return select_active_run(database.list_runs(db, academic_year, semester))
