"""Leave approval and substitute-faculty overlays.

Approving a leave never rewrites a generated run. The absent faculty's
current-term assignments are duplicated under a substitute and recorded as
a ReassignmentOverlay; merge_overlays() lays those on top of a run's
placements when the timetable is displayed.
"""
from collections import namedtuple
import logging
import sqlite3

import database
from errors import InvalidLeaveTransition, LeaveNotFound, SubstituteNotFound
from models import ReassignmentOverlay

logger = logging.getLogger(__name__)

ApprovalOutcome = namedtuple('ApprovalOutcome', 'leave overlay warning')


class ReassignmentStore:
    """Overlay persistence. save() joins the caller's transaction."""

    def __init__(self, db):
        self.db = db

    def _load(self, row):
        pairs = self.db.execute('''SELECT original_assignment_id, substitute_assignment_id
                                   FROM overlay_assignments WHERE overlay_id = ?
                                   ORDER BY original_assignment_id''', (row['overlay_id'],)).fetchall()
        return ReassignmentOverlay(
            leave_id=row['leave_id'],
            original_faculty_id=row['original_faculty_id'],
            substitute_faculty_id=row['substitute_faculty_id'],
            affected_course_assignment_ids=[p['original_assignment_id'] for p in pairs],
            substitute_assignment_ids=[p['substitute_assignment_id'] for p in pairs],
            start_date=row['start_date'],
            end_date=row['end_date'],
            id=row['overlay_id'],
        )

    def get(self, leave_id):
        row = self.db.execute('SELECT * FROM reassignment_overlays WHERE leave_id = ?', (leave_id,)).fetchone()
        return self._load(row) if row else None

    def save(self, overlay):
        cur = self.db.execute('''INSERT INTO reassignment_overlays
                                 (leave_id, original_faculty_id, substitute_faculty_id, start_date, end_date, created_at)
                                 VALUES (?, ?, ?, ?, ?, ?)''',
                              (overlay.leave_id, overlay.original_faculty_id, overlay.substitute_faculty_id,
                               overlay.start_date, overlay.end_date, database.now()))
        overlay.id = cur.lastrowid
        self.db.executemany('''INSERT INTO overlay_assignments
                               (overlay_id, original_assignment_id, substitute_assignment_id)
                               VALUES (?, ?, ?)''',
                            [(overlay.id, orig, sub) for orig, sub in overlay.substitutions.items()])
        return overlay

    def list_active(self, as_of=None):
        rows = self.db.execute('''SELECT o.* FROM reassignment_overlays o
                                  JOIN leaves l ON o.leave_id = l.leave_id
                                  WHERE l.status = 'approved'
                                  ORDER BY o.overlay_id''').fetchall()
        overlays = [self._load(row) for row in rows]
        return [o for o in overlays if o.covers(as_of)]


def current_assignments(db, faculty_id, academic_year, semester):
    return [database.assignment_from_row(r) for r in db.execute('''
        SELECT * FROM course_assignments
        WHERE faculty_id = ? AND academic_year = ? AND semester = ? AND substitutes_for IS NULL
        ORDER BY assignment_id''', (faculty_id, academic_year, semester))]


def find_substitute(db, faculty_id, academic_year, semester):
    """First active faculty (by employee id) who teaches in one of the same departments."""
    departments = [r['department_id'] for r in db.execute('''
        SELECT DISTINCT c.department_id FROM course_assignments ca
        JOIN courses c ON ca.course_id = c.course_id
        WHERE ca.faculty_id = ? AND ca.academic_year = ? AND ca.semester = ?
          AND c.department_id IS NOT NULL''', (faculty_id, academic_year, semester))]
    if not departments:
        raise SubstituteNotFound(faculty_id, f'Faculty {faculty_id} has no departmental courses this term')

    placeholders = ','.join('?' * len(departments))
    row = db.execute(f'''
        SELECT f.faculty_id FROM faculty f
        WHERE f.is_active = 1 AND f.faculty_id != ?
          AND EXISTS (SELECT 1 FROM course_assignments ca
                      JOIN courses c ON ca.course_id = c.course_id
                      WHERE ca.faculty_id = f.faculty_id AND c.department_id IN ({placeholders}))
        ORDER BY f.employee_id
        LIMIT 1''', [faculty_id] + departments).fetchone()
    if row is None:
        raise SubstituteNotFound(faculty_id)
    return row['faculty_id']


def _resolve_substitute(db, leave, academic_year, semester):
    if leave.substitute_faculty_id is None:
        return find_substitute(db, leave.faculty_id, academic_year, semester)
    row = db.execute('SELECT is_active FROM faculty WHERE faculty_id = ?',
                     (leave.substitute_faculty_id,)).fetchone()
    if row is None or not row['is_active']:
        raise SubstituteNotFound(leave.faculty_id,
                                 f'Requested substitute {leave.substitute_faculty_id} is not an active faculty member')
    return leave.substitute_faculty_id


def _reassign(db, store, leave, academic_year, semester):
    existing = store.get(leave.id)
    if existing is not None:
        return existing

    affected = current_assignments(db, leave.faculty_id, academic_year, semester)
    if not affected:
        # nothing to cover this term, so no substitute is needed
        return store.save(ReassignmentOverlay(leave.id, leave.faculty_id, leave.substitute_faculty_id,
                                              [], [], leave.start_date, leave.end_date))

    substitute_id = _resolve_substitute(db, leave, academic_year, semester)
    duplicates = []
    for assignment in affected:
        cur = db.execute('''INSERT INTO course_assignments
                            (course_id, faculty_id, batch_id, academic_year, semester,
                             hours_per_week, substitutes_for, leave_id)
                            VALUES (?, ?, ?, ?, ?, ?, ?, ?)''',
                         (assignment.course_id, substitute_id, assignment.batch_id,
                          assignment.academic_year, assignment.semester,
                          assignment.hours_per_week, assignment.id, leave.id))
        duplicates.append(cur.lastrowid)

    overlay = ReassignmentOverlay(leave.id, leave.faculty_id, substitute_id,
                                  [a.id for a in affected], duplicates,
                                  leave.start_date, leave.end_date)
    return store.save(overlay)


def approve_leave(db, leave_id, approved_by, academic_year, semester):
    leave = database.get_leave(db, leave_id)
    if leave is None:
        raise LeaveNotFound(leave_id)
    if leave.status != 'pending':
        raise InvalidLeaveTransition(leave_id, leave.status, 'approved')

    cur = db.execute('''UPDATE leaves SET status = 'approved', approved_by = ?, updated_at = ?
                        WHERE leave_id = ? AND status = 'pending' ''',
                     (approved_by, database.now(), leave_id))
    if cur.rowcount == 0:
        db.rollback()
        raise InvalidLeaveTransition(leave_id, database.get_leave(db, leave_id).status, 'approved')
    db.commit()
    leave = database.get_leave(db, leave_id)
    logger.info('Leave %s approved for faculty %s', leave_id, leave.faculty_id)

    store = ReassignmentStore(db)
    overlay = None
    warning = None
    try:
        overlay = _reassign(db, store, leave, academic_year, semester)
        db.commit()
    except SubstituteNotFound as e:
        db.rollback()
        warning = str(e)
    except sqlite3.Error as e:
        db.rollback()
        warning = f'Substitute assignment failed: {e}'

    if warning:
        logger.warning('Leave %s approved without timetable change: %s', leave_id, warning)
    elif not overlay.substitutions:
        logger.info('Faculty %s has no assignments this term, leave %s needs no cover', leave.faculty_id, leave_id)
    else:
        logger.info('Faculty %s covers %d assignment(s) for leave %s',
                    overlay.substitute_faculty_id, len(overlay.affected_course_assignment_ids), leave_id)
    return ApprovalOutcome(leave, overlay, warning)


def reject_leave(db, leave_id, approved_by):
    leave = database.get_leave(db, leave_id)
    if leave is None:
        raise LeaveNotFound(leave_id)
    if leave.status != 'pending':
        raise InvalidLeaveTransition(leave_id, leave.status, 'rejected')
    db.execute('''UPDATE leaves SET status = 'rejected', approved_by = ?, updated_at = ?
                  WHERE leave_id = ?''', (approved_by, database.now(), leave_id))
    db.commit()
    logger.info('Leave %s rejected', leave_id)
    return database.get_leave(db, leave_id)


def merge_overlays(placements, overlays):
    """Placement dicts for display, substitute entries winning their (day, time, batch) cell."""
    substitutions = {}
    for overlay in overlays:
        for original, substitute in overlay.substitutions.items():
            substitutions[original] = (overlay, substitute)

    overlaid = []
    for record in placements:
        if record.course_assignment_id not in substitutions:
            continue
        overlay, substitute = substitutions[record.course_assignment_id]
        entry = record.as_dict()
        entry.update(course_assignment_id=substitute,
                     faculty_id=overlay.substitute_faculty_id,
                     substitute_for_faculty_id=overlay.original_faculty_id)
        overlaid.append(entry)

    taken = {(e['day_of_week'], e['start_time'], e['batch_id']) for e in overlaid}
    merged = list(overlaid)
    for record in placements:
        if (record.day_of_week, record.start_time, record.batch_id) in taken:
            continue
        entry = record.as_dict()
        entry['substitute_for_faculty_id'] = None
        merged.append(entry)
    merged.sort(key=lambda e: (e['day_of_week'], e['start_time'], e['batch_id']))
    return merged
