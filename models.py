"""Record types flowing through the scheduler.

Rows coming out of SQLite are loose dict-like objects; everything the core
touches is turned into one of these first so that a malformed row fails at
construction instead of half way through a run.
"""
from dataclasses import dataclass, field, asdict, fields
from datetime import date
import hashlib
import json
import re

from errors import ValidationError

DAY_NAMES = {1: 'Monday', 2: 'Tuesday', 3: 'Wednesday', 4: 'Thursday', 5: 'Friday', 6: 'Saturday'}
SLOT_KINDS = ('class', 'break', 'lunch')
RUN_STATUSES = ('generating', 'completed', 'failed', 'published')
LEAVE_STATUSES = ('pending', 'approved', 'rejected')
LEAVE_TYPES = ('casual', 'sick', 'emergency', 'vacation', 'maternity', 'paternity')

DEFAULT_HOURS_PER_WEEK = 3
DEFAULT_STUDENT_COUNT = 30
CAPACITY_HEADROOM = 5

_TIME_RE = re.compile(r'^([01]\d|2[0-3]):[0-5]\d$')


def normalize_time(value):
    """Accept 'HH:MM' or 'HH:MM:SS' and return 'HH:MM'."""
    if not isinstance(value, str):
        raise ValidationError(f'Time must be a string, got {value!r}')
    value = value.strip()
    if len(value) == 8 and value[5] == ':':
        value = value[:5]
    if not _TIME_RE.match(value):
        raise ValidationError(f'Invalid time {value!r}, expected HH:MM')
    return value


def _require(condition, message):
    if not condition:
        raise ValidationError(message)


_TRUE = {'true', '1', 'yes', 'on'}
_FALSE = {'false', '0', 'no', 'off', ''}


def parse_bool(value, name):
    """Read a flag from JSON, a form field or a database column."""
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE:
            return True
        if text in _FALSE:
            return False
    raise ValidationError(f'{name} must be a boolean, got {value!r}')


@dataclass(frozen=True)
class TimeSlotDefinition:
    day: int
    start: str
    end: str
    kind: str = 'class'

    def __post_init__(self):
        _require(self.day in DAY_NAMES, f'day must be 1..6, got {self.day!r}')
        _require(self.kind in SLOT_KINDS, f'Unknown slot kind {self.kind!r}')
        object.__setattr__(self, 'start', normalize_time(self.start))
        object.__setattr__(self, 'end', normalize_time(self.end))
        _require(self.start < self.end, f'Slot {self.start}-{self.end} ends before it starts')

    @property
    def label(self):
        return f'{self.start} - {self.end}'


@dataclass
class Department:
    id: int
    code: str
    name: str


@dataclass
class Faculty:
    id: int
    employee_id: str
    name: str
    department_id: int = None
    is_active: bool = True

    def __post_init__(self):
        self.is_active = parse_bool(self.is_active, 'is_active')


@dataclass
class Course:
    id: int
    code: str
    name: str
    department_id: int = None
    course_type: str = 'theory'
    is_active: bool = True

    def __post_init__(self):
        self.is_active = parse_bool(self.is_active, 'is_active')


@dataclass
class Batch:
    id: int
    name: str
    student_count: int = None
    department_id: int = None
    is_active: bool = True

    def __post_init__(self):
        _require(self.student_count is None or self.student_count >= 0,
                 f'Batch {self.name} has a negative student count')
        self.is_active = parse_bool(self.is_active, 'is_active')

    @property
    def required_capacity(self):
        return (self.student_count or DEFAULT_STUDENT_COUNT) + CAPACITY_HEADROOM


@dataclass
class Room:
    id: int
    code: str
    name: str
    capacity: int = 0
    is_active: bool = True

    def __post_init__(self):
        _require(isinstance(self.capacity, int) and self.capacity >= 0,
                 f'Room {self.code} has an invalid capacity {self.capacity!r}')
        self.is_active = parse_bool(self.is_active, 'is_active')


@dataclass
class CourseAssignment:
    id: int
    course_id: int
    faculty_id: int
    batch_id: int
    academic_year: str
    semester: int
    hours_per_week: int = None
    substitutes_for: int = None
    leave_id: int = None

    def __post_init__(self):
        for name in ('course_id', 'faculty_id', 'batch_id'):
            _require(getattr(self, name) is not None, f'Course assignment needs {name}')
        _require(self.hours_per_week is None or self.hours_per_week >= 0,
                 f'Assignment {self.id} has negative hours_per_week')

    @property
    def required_hours(self):
        return self.hours_per_week or DEFAULT_HOURS_PER_WEEK


@dataclass(frozen=True)
class DemandUnit:
    assignment_id: object
    course_id: int
    faculty_id: int
    batch_id: int
    hour_index: int = 0
    is_filler: bool = False


@dataclass(frozen=True)
class PlacementRecord:
    run_id: int
    day_of_week: int
    start_time: str
    end_time: str
    course_assignment_id: int
    course_id: int
    faculty_id: int
    room_id: int
    batch_id: int
    is_filler: bool = False

    def __post_init__(self):
        _require(self.day_of_week in DAY_NAMES, f'day_of_week must be 1..6, got {self.day_of_week!r}')
        _require(self.is_filler or self.course_assignment_id is not None,
                 'Required placements must reference a course assignment')

    @property
    def cell(self):
        return (self.day_of_week, self.start_time)

    def as_dict(self):
        return asdict(self)


@dataclass
class TimetableRun:
    id: int
    name: str
    academic_year: str
    semester: int
    status: str = 'generating'
    generation_config: dict = None
    generation_log: dict = None
    created_at: str = None
    completed_at: str = None
    published_at: str = None
    generated_by: int = None

    def __post_init__(self):
        _require(self.status in RUN_STATUSES, f'Unknown run status {self.status!r}')

    def as_dict(self):
        return asdict(self)


@dataclass
class Leave:
    id: int
    faculty_id: int
    leave_type: str
    start_date: str
    end_date: str
    reason: str = None
    status: str = 'pending'
    substitute_faculty_id: int = None
    approved_by: int = None

    def __post_init__(self):
        _require(self.status in LEAVE_STATUSES, f'Unknown leave status {self.status!r}')
        _require(self.leave_type in LEAVE_TYPES, f'Unknown leave type {self.leave_type!r}')
        for name in ('start_date', 'end_date'):
            try:
                date.fromisoformat(getattr(self, name))
            except (TypeError, ValueError):
                raise ValidationError(f'{name} must be a YYYY-MM-DD date')
        _require(self.start_date <= self.end_date, 'Leave ends before it starts')
        _require(self.substitute_faculty_id != self.faculty_id,
                 'A faculty member cannot substitute for themselves')

    def as_dict(self):
        return asdict(self)


@dataclass
class ReassignmentOverlay:
    leave_id: int
    original_faculty_id: int
    substitute_faculty_id: int = None
    affected_course_assignment_ids: list = field(default_factory=list)
    substitute_assignment_ids: list = field(default_factory=list)
    start_date: str = None
    end_date: str = None
    id: int = None

    def __post_init__(self):
        _require(len(self.affected_course_assignment_ids) == len(self.substitute_assignment_ids),
                 'Every affected assignment needs exactly one substitute assignment')

    @property
    def substitutions(self):
        """original assignment id -> substitute assignment id"""
        return dict(zip(self.affected_course_assignment_ids, self.substitute_assignment_ids))

    def covers(self, as_of):
        if as_of is None:
            return True
        return (self.start_date or as_of) <= as_of <= (self.end_date or as_of)

    def as_dict(self):
        return asdict(self)


@dataclass
class GenerationConfig:
    algorithm: str = 'greedy'
    max_iterations: int = 100
    population_size: int = 50
    auto_regenerate: bool = False
    force_regenerate: bool = False
    synthesize_fillers: bool = True
    fill_gaps: bool = True

    _ALIASES = {
        'maxIterations': 'max_iterations',
        'populationSize': 'population_size',
        'autoRegenerate': 'auto_regenerate',
        'forceRegenerate': 'force_regenerate',
        'synthesizeFillers': 'synthesize_fillers',
        'fillGaps': 'fill_gaps',
    }

    def __post_init__(self):
        try:
            self.max_iterations = int(self.max_iterations)
            self.population_size = int(self.population_size)
        except (TypeError, ValueError):
            raise ValidationError('max_iterations and population_size must be integers')
        _require(self.max_iterations >= 1, 'max_iterations must be at least 1')
        for name in ('auto_regenerate', 'force_regenerate', 'synthesize_fillers', 'fill_gaps'):
            setattr(self, name, parse_bool(getattr(self, name), name))

    @classmethod
    def from_dict(cls, data):
        if not data:
            return cls()
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for key, value in data.items():
            key = cls._ALIASES.get(key, key)
            if key in known:
                kwargs[key] = value
        return cls(**kwargs)

    def as_dict(self):
        return asdict(self)


@dataclass
class ReferenceDataSnapshot:
    academic_year: str
    semester: int
    faculty: list = field(default_factory=list)
    courses: list = field(default_factory=list)
    batches: list = field(default_factory=list)
    rooms: list = field(default_factory=list)
    assignments: list = field(default_factory=list)

    def active(self, name):
        return [item for item in getattr(self, name) if item.is_active]

    def content_hash(self):
        payload = {
            name: [asdict(item) for item in getattr(self, name)]
            for name in ('faculty', 'courses', 'batches', 'rooms', 'assignments')
        }
        text = json.dumps(payload, sort_keys=True, default=str)
        return hashlib.sha256(text.encode('utf-8')).hexdigest()


@dataclass
class Conflict:
    kind: str
    assignment_id: object
    course_id: int
    faculty_id: int
    batch_id: int
    detail: str = ''

    def as_dict(self):
        return asdict(self)


@dataclass
class ScheduleStatistics:
    total_assignments: int = 0
    fully_scheduled: int = 0
    partially_scheduled: int = 0
    total_slots_created: int = 0
    required_hours: int = 0
    scheduled_hours: int = 0
    filler_slots: int = 0
    conflicts: int = 0

    def as_dict(self):
        return asdict(self)
