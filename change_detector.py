"""Regenerate when faculty, courses, rooms, batches or assignments change.

The hash of the last generated snapshot is kept in generation_settings, so
a poll only starts a run when the reference data is actually different.
"""
import logging
import sqlite3
import time

import database
from errors import NoAssignmentsFound, NoRoomsAvailable, PersistenceFailure, RunInProgress
from generation import data_hash_key, generate_timetable

logger = logging.getLogger(__name__)


def has_changed(db, academic_year, semester):
    current = database.load_snapshot(db, academic_year, semester).content_hash()
    stored = database.get_setting(db, data_hash_key(academic_year, semester))
    return stored != current, current


def check_and_regenerate(db, academic_year, semester, config):
    if not config.auto_regenerate:
        return None
    changed, current = has_changed(db, academic_year, semester)
    if not changed:
        logger.debug('No reference data change for %s semester %s', academic_year, semester)
        return None
    logger.info('Reference data changed (%s...), regenerating %s semester %s',
                current[:12], academic_year, semester)
    try:
        return generate_timetable(db, academic_year, semester, config)
    except RunInProgress:
        logger.info('Run already in progress for %s semester %s, skipping', academic_year, semester)
        return None


def force_regenerate(db, academic_year, semester, config):
    database.delete_setting(db, data_hash_key(academic_year, semester))
    logger.info('Forced regeneration for %s semester %s', academic_year, semester)
    return generate_timetable(db, academic_year, semester, config)


def watch(db, academic_year, semester, config, interval, max_polls=None, sleep=time.sleep):
    """Poll at a fixed interval. Returns the number of runs started."""
    started = 0
    polls = 0
    while max_polls is None or polls < max_polls:
        try:
            if check_and_regenerate(db, academic_year, semester, config) is not None:
                started += 1
        except (NoAssignmentsFound, NoRoomsAvailable) as e:
            logger.warning('Skipping regeneration: %s', e)
        except (PersistenceFailure, sqlite3.Error):
            logger.exception('Regeneration poll failed for %s semester %s', academic_year, semester)
        polls += 1
        if max_polls is None or polls < max_polls:
            sleep(interval)
    return started
