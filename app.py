from flask import Flask, request, jsonify, session, send_file
from werkzeug.security import check_password_hash
from werkzeug.utils import secure_filename
from datetime import timedelta
import io
import logging
import click

import database
from database import get_db
from admin_routes import admin_bp
from auth import login_required
from change_detector import check_and_regenerate, force_regenerate, watch
from errors import SchedulingError, ValidationError
from exports import timetable_frame, to_excel_bytes, to_pdf_bytes
from generation import generate_timetable, get_active_run, publish_run
from models import DAY_NAMES, GenerationConfig
from reassignment import ReassignmentStore, approve_leave, merge_overlays, reject_leave
from time_grid import DEFAULT_GRID

app = Flask(__name__)
app.config.from_object('config')
app.config.from_prefixed_env('TIMETABLE')
app.permanent_session_lifetime = timedelta(days=30)
app.teardown_appcontext(database.close_connection)
app.register_blueprint(admin_bp)

logger = logging.getLogger(__name__)


def configure_logging():
    handlers = [logging.StreamHandler()]
    if app.config.get('LOG_FILE'):
        handlers.append(logging.FileHandler(app.config['LOG_FILE'], encoding='utf-8'))
    logging.basicConfig(
        level=app.config.get('LOG_LEVEL', 'INFO'),
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        handlers=handlers,
    )


configure_logging()


@app.errorhandler(SchedulingError)
def handle_scheduling_error(error):
    if error.status_code >= 500:
        logger.error('%s: %s', type(error).__name__, error)
    return jsonify({'status': 'error', 'error': type(error).__name__, 'message': str(error)}), error.status_code


# --- REQUEST HELPERS ---
def _payload():
    return request.get_json(silent=True) or request.form.to_dict()


def _term(data):
    academic_year = data.get('academic_year') or app.config['DEFAULT_ACADEMIC_YEAR']
    try:
        semester = int(data.get('semester') or app.config['DEFAULT_SEMESTER'])
    except (TypeError, ValueError):
        raise ValidationError('semester must be an integer')
    return academic_year, semester


def _generation_config(data):
    config = data.get('config') or {}
    if not isinstance(config, dict):
        raise ValidationError('config must be a JSON object')
    options = dict(app.config['GENERATION_DEFAULTS'])
    options.update(config)
    return GenerationConfig.from_dict(options)


def _int_arg(name):
    value = request.args.get(name)
    if value in (None, ''):
        return None
    try:
        return int(value)
    except ValueError:
        raise ValidationError(f'{name} must be an integer')


def _outcome_json(outcome):
    stats = outcome.statistics
    return {
        'status': 'success',
        'run_id': outcome.run_id,
        'statistics': stats.as_dict(),
        'conflicts': [c.as_dict() for c in outcome.conflicts],
        'message': (f'Generated timetable with {stats.total_slots_created} scheduled slots. '
                    f'{stats.fully_scheduled}/{stats.total_assignments} assignments fully scheduled.'),
    }


def _resolve_run(db):
    run_id = _int_arg('run_id')
    if run_id is not None:
        run = database.get_run(db, run_id)
    else:
        run = get_active_run(db, request.args.get('academic_year'), _int_arg('semester'))
    return run


def timetable_entries(db, run, as_of=None, batch_id=None, faculty_id=None):
    """Placements of a run with overlays merged and display names attached."""
    placements = database.load_placements(db, run.id)
    overlays = ReassignmentStore(db).list_active(as_of)
    entries = merge_overlays(placements, overlays)

    courses = {r['course_id']: r for r in db.execute('SELECT course_id, code, name, course_type FROM courses')}
    faculty = {r['faculty_id']: r['name'] for r in db.execute('SELECT faculty_id, name FROM faculty')}
    rooms = {r['room_id']: r['code'] for r in db.execute('SELECT room_id, code FROM rooms')}
    batches = {r['batch_id']: r['name'] for r in db.execute('SELECT batch_id, name FROM batches')}

    result = []
    for entry in entries:
        if batch_id is not None and entry['batch_id'] != batch_id:
            continue
        if faculty_id is not None and entry['faculty_id'] != faculty_id:
            continue
        course = courses.get(entry['course_id'])
        entry.update(
            day_name=DAY_NAMES[entry['day_of_week']],
            course_code=course['code'] if course else None,
            course_name=course['name'] if course else None,
            course_type=course['course_type'] if course else None,
            faculty_name=faculty.get(entry['faculty_id']),
            room_code=rooms.get(entry['room_id']),
            batch_name=batches.get(entry['batch_id']),
        )
        result.append(entry)
    return result


# --- ROUTES ---
@app.route('/admin/login', methods=['POST'])
def admin_login():
    data = _payload()
    username = data.get('username', '')
    password = data.get('password', '')

    db = get_db()
    admin = db.execute('SELECT * FROM admins WHERE username = ?', (username,)).fetchone()
    if admin and check_password_hash(admin['password_hash'], password):
        session.clear()
        session.permanent = bool(data.get('remember'))
        session['admin_id'] = admin['id']
        session['admin_username'] = admin['username']
        return jsonify({'status': 'success', 'username': admin['username']})
    return jsonify({'status': 'error', 'message': 'Invalid username or password.'}), 401


@app.route('/admin/logout')
def admin_logout():
    session.clear()
    return jsonify({'status': 'success', 'message': 'You have been successfully logged out.'})


@app.route('/api/grid')
def api_grid():
    return jsonify(DEFAULT_GRID.as_dict())


@app.route('/api/timetable/generate', methods=['POST'])
@login_required
def api_generate():
    data = _payload()
    academic_year, semester = _term(data)
    outcome = generate_timetable(get_db(), academic_year, semester, _generation_config(data),
                                 generated_by=session.get('admin_id'))
    return jsonify(_outcome_json(outcome))


@app.route('/api/timetable/force-regenerate', methods=['POST'])
@login_required
def api_force_regenerate():
    data = _payload()
    academic_year, semester = _term(data)
    config = _generation_config(data)
    config.force_regenerate = True
    outcome = force_regenerate(get_db(), academic_year, semester, config)
    return jsonify(_outcome_json(outcome))


@app.route('/api/timetable/check-changes', methods=['POST'])
@login_required
def api_check_changes():
    data = _payload()
    academic_year, semester = _term(data)
    outcome = check_and_regenerate(get_db(), academic_year, semester, _generation_config(data))
    if outcome is None:
        return jsonify({'status': 'success', 'regenerated': False})
    return jsonify(dict(_outcome_json(outcome), regenerated=True))


@app.route('/api/runs')
def api_runs():
    db = get_db()
    runs = database.list_runs(db, request.args.get('academic_year'), _int_arg('semester'))
    return jsonify({'runs': [run.as_dict() for run in runs]})


@app.route('/api/runs/active')
def api_active_run():
    run = get_active_run(get_db(), request.args.get('academic_year'), _int_arg('semester'))
    if run is None:
        return jsonify({'status': 'error', 'message': 'No timetable has been generated yet'}), 404
    return jsonify({'run': run.as_dict()})


@app.route('/api/runs/<int:run_id>/publish', methods=['POST'])
@login_required
def api_publish(run_id):
    run = publish_run(get_db(), run_id)
    return jsonify({'status': 'success', 'run': run.as_dict(),
                    'message': 'Timetable has been published successfully!'})


@app.route('/api/timetable')
def api_timetable():
    db = get_db()
    run = _resolve_run(db)
    if run is None:
        return jsonify({'status': 'error', 'message': 'No timetable has been generated yet'}), 404
    entries = timetable_entries(db, run, request.args.get('as_of'),
                                _int_arg('batch_id'), _int_arg('faculty_id'))
    return jsonify({'run': run.as_dict(), 'entries': entries, 'grid': DEFAULT_GRID.as_dict()})


@app.route('/api/leaves/<int:leave_id>/approve', methods=['POST'])
@login_required
def api_approve_leave(leave_id):
    data = _payload()
    academic_year, semester = _term(data)
    outcome = approve_leave(get_db(), leave_id, session.get('admin_id'), academic_year, semester)
    response = {'status': 'success', 'leave': outcome.leave.as_dict(),
                'overlay': outcome.overlay.as_dict() if outcome.overlay else None,
                'message': 'Leave request approved'}
    if outcome.warning:
        response['warning'] = outcome.warning
    return jsonify(response)


@app.route('/api/leaves/<int:leave_id>/reject', methods=['POST'])
@login_required
def api_reject_leave(leave_id):
    leave = reject_leave(get_db(), leave_id, session.get('admin_id'))
    return jsonify({'status': 'success', 'leave': leave.as_dict(), 'message': 'Leave request rejected'})


def _batch_frame(batch_id):
    db = get_db()
    batch = db.execute('SELECT name FROM batches WHERE batch_id = ?', (batch_id,)).fetchone()
    if batch is None:
        return None, None
    run = _resolve_run(db)
    entries = timetable_entries(db, run, request.args.get('as_of'), batch_id=batch_id) if run else []
    return batch['name'], timetable_frame(entries, DEFAULT_GRID)


@app.route('/api/export/excel/<int:batch_id>')
def export_timetable_excel(batch_id):
    name, frame = _batch_frame(batch_id)
    if frame is None:
        return jsonify({'error': 'Batch not found'}), 404
    return send_file(io.BytesIO(to_excel_bytes(frame, name)), as_attachment=True,
                     download_name=secure_filename(f'timetable_{name}.xlsx'),
                     mimetype='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet')


@app.route('/api/export/pdf/<int:batch_id>')
def export_timetable_pdf(batch_id):
    name, frame = _batch_frame(batch_id)
    if frame is None:
        return jsonify({'error': 'Batch not found'}), 404
    return send_file(io.BytesIO(to_pdf_bytes(frame, f'Timetable - {name}')), as_attachment=True,
                     download_name=secure_filename(f'timetable_{name}.pdf'), mimetype='application/pdf')


# --- CLI ---
@app.cli.command('init-db')
def init_db_command():
    """Create tables and the default admin."""
    database.init_db(get_db(), app.config['DEFAULT_ADMIN_USERNAME'], app.config['DEFAULT_ADMIN_PASSWORD'])
    click.echo('Initialized the database.')


@app.cli.command('seed')
def seed_command():
    """Replace reference data with the sample set."""
    database.seed_sample_data(get_db(), app.config['DEFAULT_ACADEMIC_YEAR'], app.config['DEFAULT_SEMESTER'])
    click.echo('Seeded sample data.')


@app.cli.command('generate')
@click.option('--year', 'academic_year', default=None)
@click.option('--semester', type=int, default=None)
def generate_command(academic_year, semester):
    """Generate a timetable run now."""
    academic_year = academic_year or app.config['DEFAULT_ACADEMIC_YEAR']
    semester = semester or app.config['DEFAULT_SEMESTER']
    outcome = generate_timetable(get_db(), academic_year, semester, _generation_config({}))
    click.echo(f'Run {outcome.run_id}: {outcome.statistics.as_dict()}')


@app.cli.command('watch-changes')
@click.option('--year', 'academic_year', default=None)
@click.option('--semester', type=int, default=None)
@click.option('--interval', type=float, default=None)
def watch_changes_command(academic_year, semester, interval):
    """Regenerate whenever reference data changes."""
    academic_year = academic_year or app.config['DEFAULT_ACADEMIC_YEAR']
    semester = semester or app.config['DEFAULT_SEMESTER']
    config = _generation_config({'config': {'auto_regenerate': True}})
    watch(get_db(), academic_year, semester, config, interval or app.config['CHANGE_POLL_INTERVAL'])


if __name__ == '__main__':
    with app.app_context():
        database.init_db(get_db(), app.config['DEFAULT_ADMIN_USERNAME'], app.config['DEFAULT_ADMIN_PASSWORD'])
    app.run(debug=True)
