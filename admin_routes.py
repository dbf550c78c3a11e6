from flask import Blueprint, request, jsonify
import sqlite3

from auth import login_required
from database import get_db, now
from errors import ValidationError
from models import Batch, Course, CourseAssignment, Department, Faculty, Leave, Room

admin_bp = Blueprint('admin_bp', __name__, url_prefix='/api/admin')

ENTITIES = {
    'departments': 'department_id',
    'faculty': 'faculty_id',
    'courses': 'course_id',
    'rooms': 'room_id',
    'batches': 'batch_id',
    'course_assignments': 'assignment_id',
    'leaves': 'leave_id',
}


def _data():
    return request.get_json(silent=True) or request.form.to_dict()


def _required(data, *names):
    missing = [name for name in names if data.get(name) in (None, '')]
    if missing:
        raise ValidationError(f'Missing required field(s): {", ".join(missing)}')


def _int(data, name, default=None):
    value = data.get(name)
    if value in (None, ''):
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'{name} must be an integer')


def _insert(query, params, label):
    db = get_db()
    try:
        cur = db.execute(query, params)
        db.commit()
    except sqlite3.IntegrityError as e:
        db.rollback()
        return jsonify({'status': 'error', 'message': f'Error adding {label}: {e}'}), 409
    return jsonify({'status': 'success', 'id': cur.lastrowid, 'message': f'{label.capitalize()} added successfully!'})


@admin_bp.route('/add_department', methods=['POST'])
@login_required
def add_department():
    data = _data()
    _required(data, 'code', 'name')
    department = Department(None, data['code'], data['name'])
    return _insert('INSERT INTO departments (code, name) VALUES (?, ?)',
                   (department.code, department.name), 'department')


@admin_bp.route('/add_faculty', methods=['POST'])
@login_required
def add_faculty():
    data = _data()
    _required(data, 'employee_id', 'name')
    member = Faculty(None, data['employee_id'], data['name'], _int(data, 'department_id'),
                     data.get('is_active', True))
    return _insert('INSERT INTO faculty (employee_id, name, department_id, is_active) VALUES (?, ?, ?, ?)',
                   (member.employee_id, member.name, member.department_id, int(member.is_active)),
                   'faculty member')


@admin_bp.route('/add_course', methods=['POST'])
@login_required
def add_course():
    data = _data()
    _required(data, 'code', 'name')
    course = Course(None, data['code'], data['name'], _int(data, 'department_id'),
                    data.get('course_type') or 'theory')
    return _insert('INSERT INTO courses (code, name, department_id, course_type) VALUES (?, ?, ?, ?)',
                   (course.code, course.name, course.department_id, course.course_type), 'course')


@admin_bp.route('/add_room', methods=['POST'])
@login_required
def add_room():
    data = _data()
    _required(data, 'code', 'name')
    room = Room(None, data['code'], data['name'], _int(data, 'capacity', 0), data.get('is_active', True))
    return _insert('INSERT INTO rooms (code, name, capacity, is_active) VALUES (?, ?, ?, ?)',
                   (room.code, room.name, room.capacity, int(room.is_active)), 'room')


@admin_bp.route('/add_batch', methods=['POST'])
@login_required
def add_batch():
    data = _data()
    _required(data, 'name')
    batch = Batch(None, data['name'], _int(data, 'student_count'), _int(data, 'department_id'))
    return _insert('INSERT INTO batches (name, student_count, department_id) VALUES (?, ?, ?)',
                   (batch.name, batch.student_count, batch.department_id), 'batch')


@admin_bp.route('/add_assignment', methods=['POST'])
@login_required
def add_assignment():
    data = _data()
    _required(data, 'course_id', 'faculty_id', 'batch_id', 'academic_year', 'semester')
    a = CourseAssignment(None, _int(data, 'course_id'), _int(data, 'faculty_id'), _int(data, 'batch_id'),
                         data['academic_year'], _int(data, 'semester'), _int(data, 'hours_per_week'))
    return _insert('''INSERT INTO course_assignments
                      (course_id, faculty_id, batch_id, academic_year, semester, hours_per_week)
                      VALUES (?, ?, ?, ?, ?, ?)''',
                   (a.course_id, a.faculty_id, a.batch_id, a.academic_year, a.semester, a.hours_per_week),
                   'course assignment')


@admin_bp.route('/add_leave', methods=['POST'])
@login_required
def add_leave():
    data = _data()
    _required(data, 'faculty_id', 'start_date', 'end_date')
    leave = Leave(None, _int(data, 'faculty_id'), data.get('leave_type') or 'casual',
                  data['start_date'], data['end_date'], data.get('reason'),
                  substitute_faculty_id=_int(data, 'substitute_faculty_id'))
    stamp = now()
    return _insert('''INSERT INTO leaves
                      (faculty_id, leave_type, start_date, end_date, reason, status,
                       substitute_faculty_id, created_at, updated_at)
                      VALUES (?, ?, ?, ?, ?, 'pending', ?, ?, ?)''',
                   (leave.faculty_id, leave.leave_type, leave.start_date, leave.end_date, leave.reason,
                    leave.substitute_faculty_id, stamp, stamp),
                   'leave request')


@admin_bp.route('/list/<entity>')
@login_required
def list_entity(entity):
    if entity not in ENTITIES:
        return jsonify({'status': 'error', 'message': 'Invalid entity'}), 400
    rows = get_db().execute(f'SELECT * FROM {entity} ORDER BY {ENTITIES[entity]}').fetchall()
    return jsonify({entity: [dict(row) for row in rows]})


@admin_bp.route('/delete/<entity>/<int:id>', methods=['DELETE'])
@login_required
def delete_entity(entity, id):
    if entity not in ENTITIES:
        return jsonify({'status': 'error', 'message': 'Invalid entity'}), 400
    db = get_db()
    try:
        cur = db.execute(f'DELETE FROM {entity} WHERE {ENTITIES[entity]} = ?', (id,))
        db.commit()
    except sqlite3.IntegrityError:
        db.rollback()
        return jsonify({'status': 'error', 'message': 'Cannot delete, it is in use by another table.'}), 409
    if cur.rowcount == 0:
        return jsonify({'status': 'error', 'message': f'{entity} {id} not found'}), 404
    return jsonify({'status': 'success', 'message': f'{entity.capitalize()} deleted successfully.'})
