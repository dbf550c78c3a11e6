"""Configuration settings for the timetable scheduler.

Loaded into the Flask app with ``app.config.from_object('config')``; any value
can be overridden from the environment with a ``TIMETABLE_`` prefix, e.g.
``TIMETABLE_DATABASE=/srv/timetable.db``.
"""
import os

BASE_DIR = os.path.dirname(os.path.abspath(__file__))

DATABASE = os.path.join(BASE_DIR, 'timetable.db')
SECRET_KEY = 'change-me-in-production'

# Default admin seeded by init_db (change after first run)
DEFAULT_ADMIN_USERNAME = 'admin'
DEFAULT_ADMIN_PASSWORD = 'admin123'

# Term used when a request does not name one
DEFAULT_ACADEMIC_YEAR = '2024-25'
DEFAULT_SEMESTER = 1

# Generation config used when a request sends none
GENERATION_DEFAULTS = {
    'algorithm': 'greedy',
    'max_iterations': 100,
    'population_size': 50,
    'auto_regenerate': False,
    'force_regenerate': False,
}

# Seconds between change-detector polls (flask watch-changes)
CHANGE_POLL_INTERVAL = 30

LOG_LEVEL = 'INFO'
LOG_FILE = None
