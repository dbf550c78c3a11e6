"""Shared builders for the test modules."""
import os
import tempfile

import database
from models import (Batch, Course, CourseAssignment, Faculty, GenerationConfig,
                    ReferenceDataSnapshot, Room, TimeSlotDefinition)
from time_grid import TimeGrid

YEAR = '2024-25'
SEMESTER = 1

NO_FILL = GenerationConfig(synthesize_fillers=False, fill_gaps=False)


def uniform_grid(days, slots_per_day):
    """Same number of one-hour class slots every day, no breaks."""
    slots = []
    for day in days:
        for i in range(slots_per_day):
            slots.append(TimeSlotDefinition(day, f'{9 + i:02d}:00', f'{10 + i:02d}:00'))
    return TimeGrid(slots)


def snapshot(assignments, faculty=None, courses=None, batches=None, rooms=None):
    """Snapshot whose reference lists default to whatever the assignments use."""
    if faculty is None:
        ids = sorted({a.faculty_id for a in assignments})
        faculty = [Faculty(i, f'EMP{i:03d}', f'Faculty {i}') for i in ids]
    if courses is None:
        ids = sorted({a.course_id for a in assignments})
        courses = [Course(i, f'C{i}', f'Course {i}') for i in ids]
    if batches is None:
        ids = sorted({a.batch_id for a in assignments})
        batches = [Batch(i, f'Batch {i}', 30) for i in ids]
    if rooms is None:
        rooms = [Room(1, 'R1', 'Room 1', 40)]
    return ReferenceDataSnapshot(YEAR, SEMESTER, faculty, courses, batches, rooms, assignments)


def assignment(id, course_id, faculty_id, batch_id, hours=3):
    return CourseAssignment(id, course_id, faculty_id, batch_id, YEAR, SEMESTER, hours)


class TempDatabase:
    """A throwaway SQLite file with the schema applied."""

    def __init__(self):
        fd, self.path = tempfile.mkstemp(suffix='.db')
        os.close(fd)
        self.db = database.connect(self.path)
        database.init_db(self.db)

    def close(self):
        self.db.close()
        os.remove(self.path)


def add_reference_data(db):
    """Two departments, three faculty, three courses, one room, two batches, three assignments.

    Faculty 1 (EMP002) and 2 (EMP001) teach CSE courses to batch 1; faculty 3
    is the only ECE faculty member.
    """
    db.executemany('INSERT INTO departments (code, name) VALUES (?, ?)',
                   [('CSE', 'Computer Science'), ('ECE', 'Electronics')])
    db.executemany('INSERT INTO faculty (employee_id, name, department_id) VALUES (?, ?, ?)',
                   [('EMP002', 'Asha Rao', 1), ('EMP001', 'Bala Iyer', 1), ('EMP003', 'Chen Li', 2)])
    db.executemany('INSERT INTO courses (code, name, department_id) VALUES (?, ?, ?)',
                   [('CS101', 'Programming', 1), ('CS102', 'Discrete Maths', 1), ('EC101', 'Circuits', 2)])
    db.execute("INSERT INTO rooms (code, name, capacity) VALUES ('R1', 'Room 1', 70)")
    db.executemany('INSERT INTO batches (name, student_count, department_id) VALUES (?, ?, ?)',
                   [('CS-A', 60, 1), ('EC-A', 30, 2)])
    db.executemany('''INSERT INTO course_assignments
                      (course_id, faculty_id, batch_id, academic_year, semester, hours_per_week)
                      VALUES (?, ?, ?, ?, ?, ?)''',
                   [(1, 1, 1, YEAR, SEMESTER, 3), (2, 2, 1, YEAR, SEMESTER, 2), (3, 3, 2, YEAR, SEMESTER, 3)])
    db.commit()


def add_leave(db, faculty_id, substitute_faculty_id=None, start='2024-09-02', end='2024-09-06'):
    stamp = database.now()
    cur = db.execute('''INSERT INTO leaves
                        (faculty_id, leave_type, start_date, end_date, reason, status,
                         substitute_faculty_id, created_at, updated_at)
                        VALUES (?, 'casual', ?, ?, 'family', 'pending', ?, ?, ?)''',
                     (faculty_id, start, end, substitute_faculty_id, stamp, stamp))
    db.commit()
    return cur.lastrowid


def count(db, table):
    return db.execute(f'SELECT COUNT(*) FROM {table}').fetchone()[0]
