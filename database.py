import json
import sqlite3
from datetime import datetime

from flask import current_app, g
from werkzeug.security import generate_password_hash

from models import (Batch, Course, CourseAssignment, Faculty, Leave, PlacementRecord,
                    ReferenceDataSnapshot, Room, TimetableRun)

SCHEMA = '''
    CREATE TABLE IF NOT EXISTS departments (
        department_id INTEGER PRIMARY KEY AUTOINCREMENT,
        code TEXT NOT NULL UNIQUE,
        name TEXT NOT NULL
    );
    CREATE TABLE IF NOT EXISTS faculty (
        faculty_id INTEGER PRIMARY KEY AUTOINCREMENT,
        employee_id TEXT NOT NULL UNIQUE,
        name TEXT NOT NULL,
        department_id INTEGER,
        is_active INTEGER NOT NULL DEFAULT 1,
        FOREIGN KEY (department_id) REFERENCES departments(department_id)
    );
    CREATE TABLE IF NOT EXISTS courses (
        course_id INTEGER PRIMARY KEY AUTOINCREMENT,
        code TEXT NOT NULL UNIQUE,
        name TEXT NOT NULL,
        department_id INTEGER,
        course_type TEXT NOT NULL DEFAULT 'theory',
        is_active INTEGER NOT NULL DEFAULT 1,
        FOREIGN KEY (department_id) REFERENCES departments(department_id)
    );
    CREATE TABLE IF NOT EXISTS rooms (
        room_id INTEGER PRIMARY KEY AUTOINCREMENT,
        code TEXT NOT NULL UNIQUE,
        name TEXT NOT NULL,
        capacity INTEGER NOT NULL DEFAULT 0,
        is_active INTEGER NOT NULL DEFAULT 1
    );
    CREATE TABLE IF NOT EXISTS batches (
        batch_id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL UNIQUE,
        student_count INTEGER,
        department_id INTEGER,
        is_active INTEGER NOT NULL DEFAULT 1,
        FOREIGN KEY (department_id) REFERENCES departments(department_id)
    );
    CREATE TABLE IF NOT EXISTS course_assignments (
        assignment_id INTEGER PRIMARY KEY AUTOINCREMENT,
        course_id INTEGER NOT NULL,
        faculty_id INTEGER NOT NULL,
        batch_id INTEGER NOT NULL,
        academic_year TEXT NOT NULL,
        semester INTEGER NOT NULL,
        hours_per_week INTEGER,
        substitutes_for INTEGER,
        leave_id INTEGER,
        FOREIGN KEY (course_id) REFERENCES courses(course_id),
        FOREIGN KEY (faculty_id) REFERENCES faculty(faculty_id),
        FOREIGN KEY (batch_id) REFERENCES batches(batch_id),
        FOREIGN KEY (substitutes_for) REFERENCES course_assignments(assignment_id),
        FOREIGN KEY (leave_id) REFERENCES leaves(leave_id)
    );
    CREATE TABLE IF NOT EXISTS timetable_runs (
        run_id INTEGER PRIMARY KEY AUTOINCREMENT,
        name TEXT NOT NULL,
        academic_year TEXT NOT NULL,
        semester INTEGER NOT NULL,
        status TEXT NOT NULL DEFAULT 'generating',
        generation_config TEXT,
        generation_log TEXT,
        created_at TEXT NOT NULL,
        completed_at TEXT,
        published_at TEXT,
        generated_by INTEGER
    );
    CREATE TABLE IF NOT EXISTS timetables (
        slot_id INTEGER PRIMARY KEY AUTOINCREMENT,
        run_id INTEGER NOT NULL,
        course_assignment_id INTEGER,
        course_id INTEGER NOT NULL,
        faculty_id INTEGER NOT NULL,
        batch_id INTEGER NOT NULL,
        room_id INTEGER NOT NULL,
        day_of_week INTEGER NOT NULL,
        start_time TEXT NOT NULL,
        end_time TEXT NOT NULL,
        is_filler INTEGER NOT NULL DEFAULT 0,
        FOREIGN KEY (run_id) REFERENCES timetable_runs(run_id),
        FOREIGN KEY (course_assignment_id) REFERENCES course_assignments(assignment_id),
        FOREIGN KEY (room_id) REFERENCES rooms(room_id)
    );
    CREATE TABLE IF NOT EXISTS leaves (
        leave_id INTEGER PRIMARY KEY AUTOINCREMENT,
        faculty_id INTEGER NOT NULL,
        leave_type TEXT NOT NULL DEFAULT 'casual',
        start_date TEXT NOT NULL,
        end_date TEXT NOT NULL,
        reason TEXT,
        status TEXT NOT NULL DEFAULT 'pending',
        substitute_faculty_id INTEGER,
        approved_by INTEGER,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL,
        FOREIGN KEY (faculty_id) REFERENCES faculty(faculty_id),
        FOREIGN KEY (substitute_faculty_id) REFERENCES faculty(faculty_id)
    );
    CREATE TABLE IF NOT EXISTS reassignment_overlays (
        overlay_id INTEGER PRIMARY KEY AUTOINCREMENT,
        leave_id INTEGER NOT NULL UNIQUE,
        original_faculty_id INTEGER NOT NULL,
        substitute_faculty_id INTEGER,
        start_date TEXT,
        end_date TEXT,
        created_at TEXT NOT NULL,
        FOREIGN KEY (leave_id) REFERENCES leaves(leave_id)
    );
    CREATE TABLE IF NOT EXISTS overlay_assignments (
        overlay_id INTEGER NOT NULL,
        original_assignment_id INTEGER NOT NULL,
        substitute_assignment_id INTEGER NOT NULL,
        PRIMARY KEY (overlay_id, original_assignment_id),
        FOREIGN KEY (overlay_id) REFERENCES reassignment_overlays(overlay_id)
    );
    CREATE TABLE IF NOT EXISTS generation_settings (
        key TEXT PRIMARY KEY,
        value TEXT
    );
    CREATE TABLE IF NOT EXISTS admins (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        username TEXT UNIQUE NOT NULL,
        password_hash TEXT NOT NULL
    );
'''


def now():
    return datetime.now().isoformat(timespec='seconds')


# --- CONNECTIONS ---
def connect(path):
    db = sqlite3.connect(path)
    db.row_factory = sqlite3.Row
    db.execute('PRAGMA foreign_keys = ON')
    return db


def get_db():
    db = getattr(g, '_database', None)
    if db is None:
        db = g._database = connect(current_app.config['DATABASE'])
    return db


def close_connection(exception):
    db = g.pop('_database', None)
    if db is not None:
        db.close()


def init_db(db, admin_username='admin', admin_password='admin123'):
    db.executescript(SCHEMA)
    if db.execute('SELECT 1 FROM admins').fetchone() is None:
        db.execute('INSERT INTO admins (username, password_hash) VALUES (?, ?)',
                   (admin_username, generate_password_hash(admin_password)))
    db.commit()


def seed_sample_data(db, academic_year='2024-25', semester=1):
    db.executescript('''
        DELETE FROM overlay_assignments;
        DELETE FROM reassignment_overlays;
        DELETE FROM timetables;
        DELETE FROM timetable_runs;
        DELETE FROM course_assignments;
        DELETE FROM leaves;
        DELETE FROM faculty;
        DELETE FROM courses;
        DELETE FROM batches;
        DELETE FROM rooms;
        DELETE FROM departments;
    ''')
    db.executemany('INSERT INTO departments (code, name) VALUES (?, ?)',
                   [('CSE', 'Computer Science'), ('ECE', 'Electronics')])
    cse, ece = [r['department_id'] for r in db.execute('SELECT department_id FROM departments ORDER BY department_id')]
    db.executemany('INSERT INTO faculty (employee_id, name, department_id) VALUES (?, ?, ?)', [
        ('EMP001', 'Prof. Bhosle', cse), ('EMP002', 'Prof. Ghule', cse),
        ('EMP003', 'Prof. S.D. Pingle', ece), ('EMP004', 'Prof. R.K. Ghule', ece),
    ])
    db.executemany('INSERT INTO courses (code, name, department_id, course_type) VALUES (?, ?, ?, ?)', [
        ('CS201', 'Data Structures', cse, 'theory'), ('CS202', 'Operating Systems', cse, 'theory'),
        ('CS203', 'Database Systems', cse, 'theory'), ('CS251', 'Programming Lab', cse, 'lab'),
        ('EC201', 'Signals and Systems', ece, 'theory'), ('EC202', 'Digital Electronics', ece, 'theory'),
    ])
    db.executemany('INSERT INTO rooms (code, name, capacity) VALUES (?, ?, ?)', [
        ('CR-1', 'Classroom 1', 70), ('CR-2', 'Classroom 2', 70), ('LAB-1', 'Lab 1', 40),
    ])
    db.executemany('INSERT INTO batches (name, student_count, department_id) VALUES (?, ?, ?)', [
        ('CS-A 2024', 60, cse), ('CS-B 2024', 58, cse), ('EC-A 2024', 30, ece),
    ])
    f = [r[0] for r in db.execute('SELECT faculty_id FROM faculty ORDER BY faculty_id')]
    c = [r[0] for r in db.execute('SELECT course_id FROM courses ORDER BY course_id')]
    b = [r[0] for r in db.execute('SELECT batch_id FROM batches ORDER BY batch_id')]
    db.executemany('''INSERT INTO course_assignments
                      (course_id, faculty_id, batch_id, academic_year, semester, hours_per_week)
                      VALUES (?, ?, ?, ?, ?, ?)''', [
        (c[0], f[0], b[0], academic_year, semester, 4),
        (c[1], f[1], b[0], academic_year, semester, 3),
        (c[2], f[0], b[1], academic_year, semester, 3),
        (c[3], f[1], b[1], academic_year, semester, 2),
        (c[4], f[2], b[2], academic_year, semester, 4),
        (c[5], f[3], b[2], academic_year, semester, 3),
    ])
    db.commit()


# --- ROW MAPPING ---
def faculty_from_row(row):
    return Faculty(row['faculty_id'], row['employee_id'], row['name'],
                   row['department_id'], row['is_active'])


def course_from_row(row):
    return Course(row['course_id'], row['code'], row['name'], row['department_id'],
                  row['course_type'], row['is_active'])


def batch_from_row(row):
    return Batch(row['batch_id'], row['name'], row['student_count'],
                 row['department_id'], row['is_active'])


def room_from_row(row):
    return Room(row['room_id'], row['code'], row['name'], row['capacity'], row['is_active'])


def assignment_from_row(row):
    return CourseAssignment(row['assignment_id'], row['course_id'], row['faculty_id'],
                            row['batch_id'], row['academic_year'], row['semester'],
                            row['hours_per_week'], row['substitutes_for'], row['leave_id'])


def leave_from_row(row):
    return Leave(row['leave_id'], row['faculty_id'], row['leave_type'], row['start_date'],
                 row['end_date'], row['reason'], row['status'],
                 row['substitute_faculty_id'], row['approved_by'])


def run_from_row(row):
    return TimetableRun(
        id=row['run_id'], name=row['name'], academic_year=row['academic_year'],
        semester=row['semester'], status=row['status'],
        generation_config=json.loads(row['generation_config']) if row['generation_config'] else None,
        generation_log=json.loads(row['generation_log']) if row['generation_log'] else None,
        created_at=row['created_at'], completed_at=row['completed_at'],
        published_at=row['published_at'], generated_by=row['generated_by'])


def placement_from_row(row):
    return PlacementRecord(row['run_id'], row['day_of_week'], row['start_time'], row['end_time'],
                           row['course_assignment_id'], row['course_id'], row['faculty_id'],
                           row['room_id'], row['batch_id'], bool(row['is_filler']))


# --- REFERENCE DATA ---
def load_snapshot(db, academic_year, semester):
    """Everything one generation run for a term needs, in stable id order."""
    faculty = [faculty_from_row(r) for r in db.execute('SELECT * FROM faculty ORDER BY faculty_id')]
    courses = [course_from_row(r) for r in db.execute('SELECT * FROM courses ORDER BY course_id')]
    batches = [batch_from_row(r) for r in db.execute('SELECT * FROM batches ORDER BY batch_id')]
    rooms = [room_from_row(r) for r in db.execute('SELECT * FROM rooms WHERE is_active = 1 ORDER BY room_id')]
    # substitute duplicates are overlays, not demand
    assignments = [assignment_from_row(r) for r in db.execute('''
        SELECT ca.* FROM course_assignments ca
        JOIN courses c ON ca.course_id = c.course_id
        JOIN faculty f ON ca.faculty_id = f.faculty_id
        JOIN batches b ON ca.batch_id = b.batch_id
        WHERE ca.academic_year = ? AND ca.semester = ? AND ca.substitutes_for IS NULL
          AND c.is_active = 1 AND f.is_active = 1 AND b.is_active = 1
        ORDER BY ca.assignment_id
    ''', (academic_year, semester))]
    return ReferenceDataSnapshot(academic_year, semester, faculty, courses, batches, rooms, assignments)


def get_leave(db, leave_id):
    row = db.execute('SELECT * FROM leaves WHERE leave_id = ?', (leave_id,)).fetchone()
    return leave_from_row(row) if row else None


# --- RUNS ---
def create_run(db, academic_year, semester, config, generated_by=None):
    cur = db.execute('''INSERT INTO timetable_runs
                        (name, academic_year, semester, status, generation_config, created_at, generated_by)
                        VALUES (?, ?, ?, 'generating', ?, ?, ?)''',
                     (f'Generated Timetable - {academic_year} Semester {semester}',
                      academic_year, semester, json.dumps(config.as_dict()), now(), generated_by))
    db.commit()
    return cur.lastrowid


def insert_placements(db, run_id, placements):
    db.executemany('''INSERT INTO timetables
                      (run_id, course_assignment_id, course_id, faculty_id, batch_id, room_id,
                       day_of_week, start_time, end_time, is_filler)
                      VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)''',
                   [(run_id, p.course_assignment_id, p.course_id, p.faculty_id, p.batch_id,
                     p.room_id, p.day_of_week, p.start_time, p.end_time, int(p.is_filler))
                    for p in placements])


def finish_run(db, run_id, status, log):
    db.execute('UPDATE timetable_runs SET status = ?, completed_at = ?, generation_log = ? WHERE run_id = ?',
               (status, now(), json.dumps(log, default=str), run_id))
    db.commit()


def get_run(db, run_id):
    row = db.execute('SELECT * FROM timetable_runs WHERE run_id = ?', (run_id,)).fetchone()
    return run_from_row(row) if row else None


def list_runs(db, academic_year=None, semester=None):
    query = 'SELECT * FROM timetable_runs'
    params = ()
    if academic_year is not None and semester is not None:
        query += ' WHERE academic_year = ? AND semester = ?'
        params = (academic_year, semester)
    query += ' ORDER BY created_at DESC, run_id DESC'
    return [run_from_row(r) for r in db.execute(query, params)]


def load_placements(db, run_id):
    rows = db.execute('SELECT * FROM timetables WHERE run_id = ? ORDER BY day_of_week, start_time, slot_id',
                      (run_id,))
    return [placement_from_row(r) for r in rows]


# --- SETTINGS ---
def get_setting(db, key, default=None):
    row = db.execute('SELECT value FROM generation_settings WHERE key = ?', (key,)).fetchone()
    return row['value'] if row else default


def set_setting(db, key, value):
    db.execute('INSERT OR REPLACE INTO generation_settings (key, value) VALUES (?, ?)', (key, value))
    db.commit()


def delete_setting(db, key):
    db.execute('DELETE FROM generation_settings WHERE key = ?', (key,))
    db.commit()
