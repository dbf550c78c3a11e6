"""Greedy, score-driven timetable placement.

The scheduler works on plain records (see models.py) and never touches the
database. One TimetableScheduler instance handles exactly one run:

1. expand_demand turns every course assignment into one DemandUnit per
   weekly hour, plus filler units when the grid has room to spare;
2. the main pass asks SlotSelector for the best legal (day, slot, room) of
   each unit and commits it through place();
3. fill_gaps puts a filler placement into every class cell nobody used.

Everything is deterministic: same snapshot and config, same placements.
"""
from collections import Counter, defaultdict, namedtuple
import logging

from errors import NoCandidateSlot
from ledger import AvailabilityLedger
from models import Conflict, DemandUnit, PlacementRecord, ScheduleStatistics
from time_grid import DEFAULT_GRID, EARLY_AFTERNOON, MORNING

logger = logging.getLogger(__name__)

# Scoring table, higher is better
MORNING_SCORE = 10
EARLY_AFTERNOON_SCORE = 8
LATE_AFTERNOON_SCORE = 5
ADJACENT_PENALTY = 5
DAILY_LOAD_PENALTY = 2
MORNING_LIGHT_BONUS = 3
SHORT_DAY_BONUS = 5
# outweighs any day bonus, so an assignment spreads one hour per day
SAME_DAY_PENALTY = 10

DemandPlan = namedtuple(
    'DemandPlan', 'required_units filler_units total_available_slots total_required_slots')
Candidate = namedtuple('Candidate', 'day slot index room_id score')
ScheduleResult = namedtuple('ScheduleResult', 'placements conflicts statistics scheduled_hours')


def expand_demand(snapshot, grid=DEFAULT_GRID, synthesize_fillers=True):
    required = []
    for assignment in snapshot.assignments:
        for hour in range(assignment.required_hours):
            required.append(DemandUnit(assignment.id, assignment.course_id,
                                       assignment.faculty_id, assignment.batch_id, hour))

    total_available = grid.total_class_slots()
    total_required = len(required)

    fillers = []
    faculty = snapshot.active('faculty')
    courses = snapshot.active('courses')
    batches = snapshot.active('batches')
    if synthesize_fillers and total_available > total_required:
        if faculty and courses and batches:
            for i in range(total_available - total_required):
                fillers.append(DemandUnit(f'filler-{i}',
                                          courses[i % len(courses)].id,
                                          faculty[i % len(faculty)].id,
                                          batches[i % len(batches)].id,
                                          i, is_filler=True))
        else:
            logger.info('Skipping filler synthesis: no faculty, course or batch reference data')

    logger.info('Demand: %d required hours, %d filler units, %d class slots in grid',
                total_required, len(fillers), total_available)
    return DemandPlan(required, fillers, total_available, total_required)


class SlotSelector:
    """Scores every legal (day, slot) for a unit and picks the best one."""

    def __init__(self, grid, ledger, rooms, batches):
        self.grid = grid
        self.ledger = ledger
        self.rooms = [room for room in rooms if room.is_active]
        self.batches = {batch.id: batch for batch in batches}
        self.room_cursor = 0
        # assignment id -> days already holding one of its hours
        self.assignment_days = defaultdict(set)

    def eligible_rooms(self, unit):
        batch = self.batches.get(unit.batch_id)
        if batch is None:
            return list(self.rooms)
        return [room for room in self.rooms if room.capacity >= batch.required_capacity]

    def pick_room(self, rooms, day, time):
        if not rooms:
            return None
        offset = self.room_cursor % len(rooms)
        for room in rooms[offset:] + rooms[:offset]:
            if self.ledger.is_free('room', room.id, day, time):
                return room
        return None

    def score(self, unit, day, index):
        block = self.grid.block_of(day, index)
        if block == MORNING:
            score = MORNING_SCORE
        elif block == EARLY_AFTERNOON:
            score = EARLY_AFTERNOON_SCORE
        else:
            score = LATE_AFTERNOON_SCORE

        slots = self.grid.class_slots(day)
        for neighbour in (index - 1, index + 1):
            if 0 <= neighbour < len(slots) and \
                    self.ledger.faculty_busy(unit.faculty_id, day, slots[neighbour].start):
                score -= ADJACENT_PENALTY

        score -= DAILY_LOAD_PENALTY * self.ledger.faculty_load(unit.faculty_id, day)
        if day in self.assignment_days[unit.assignment_id]:
            score -= SAME_DAY_PENALTY

        if block == MORNING:
            if self.grid.is_prefer_morning_light(day):
                score += MORNING_LIGHT_BONUS
            if self.grid.is_shortest_day(day):
                score += SHORT_DAY_BONUS
        return score

    def select(self, unit):
        rooms = self.eligible_rooms(unit)
        if not rooms:
            raise NoCandidateSlot(unit, 'no active room has enough capacity')

        best = None
        for day in self.grid.days():
            for index, slot in enumerate(self.grid.class_slots(day)):
                time = slot.start
                if not self.ledger.is_free('faculty', unit.faculty_id, day, time):
                    continue
                if not self.ledger.is_free('batch', unit.batch_id, day, time):
                    continue
                if not self.ledger.is_free('course', unit.course_id, day, time):
                    continue
                room = self.pick_room(rooms, day, time)
                if room is None:
                    continue
                score = self.score(unit, day, index)
                # strict > keeps the first candidate on ties
                if best is None or score > best.score:
                    best = Candidate(day, slot, index, room.id, score)
        if best is None:
            raise NoCandidateSlot(unit)
        return best


class TimetableScheduler:

    def __init__(self, snapshot, config, grid=DEFAULT_GRID):
        self.snapshot = snapshot
        self.config = config
        self.grid = grid
        self.ledger = AvailabilityLedger()
        self.selector = SlotSelector(grid, self.ledger, snapshot.rooms, snapshot.batches)
        self.placements = []
        self.conflicts = []
        self.scheduled_hours = Counter()
        self.unplaced_fillers = 0
        self.run_id = None

    def place(self, unit, candidate):
        day, slot = candidate.day, candidate.slot
        self.ledger.reserve_all(unit.faculty_id, unit.batch_id, unit.course_id,
                                candidate.room_id, day, slot.start)
        record = PlacementRecord(
            run_id=self.run_id,
            day_of_week=day,
            start_time=slot.start,
            end_time=slot.end,
            course_assignment_id=None if unit.is_filler else unit.assignment_id,
            course_id=unit.course_id,
            faculty_id=unit.faculty_id,
            room_id=candidate.room_id,
            batch_id=unit.batch_id,
            is_filler=unit.is_filler,
        )
        self.placements.append(record)
        if not unit.is_filler:
            self.scheduled_hours[unit.assignment_id] += 1
        self.selector.room_cursor += 1
        self.selector.assignment_days[unit.assignment_id].add(day)
        logger.debug('Placed %s (hour %d) on day %d at %s in room %s, score %d',
                     unit.assignment_id, unit.hour_index, day, slot.start,
                     candidate.room_id, candidate.score)
        return record

    def _main_pass(self, units):
        """Place units in rounds until nothing is pending or nothing moves."""
        ceiling = self.config.max_iterations
        attempts = Counter()
        pending = list(units)
        failures = {}
        rounds = 0
        while pending:
            rounds += 1
            still_pending = []
            placed_any = False
            for unit in pending:
                if attempts[unit.assignment_id] >= ceiling:
                    still_pending.append(unit)
                    continue
                attempts[unit.assignment_id] += 1
                try:
                    candidate = self.selector.select(unit)
                except NoCandidateSlot as e:
                    failures[unit] = e
                    still_pending.append(unit)
                    continue
                self.place(unit, candidate)
                placed_any = True
            pending = still_pending
            if not placed_any:
                break
        logger.debug('Main pass finished after %d round(s), %d unit(s) left', rounds, len(pending))

        for unit in pending:
            if unit.is_filler:
                self.unplaced_fillers += 1
                continue
            error = failures.get(unit)
            reason = error.reason if error else f'attempt limit of {ceiling} reached'
            self.conflicts.append(Conflict(NoCandidateSlot.__name__, unit.assignment_id,
                                           unit.course_id, unit.faculty_id, unit.batch_id,
                                           reason))
            logger.warning('Could not schedule hour %d of assignment %s: %s',
                           unit.hour_index + 1, unit.assignment_id, reason)

    def fill_gaps(self):
        faculty = self.snapshot.active('faculty')
        courses = self.snapshot.active('courses')
        batches = self.snapshot.active('batches')
        rooms = self.snapshot.active('rooms')
        if not (faculty and courses and batches and rooms):
            logger.info('Skipping gap fill: missing reference data')
            return []

        used = {record.cell for record in self.placements}
        empty = [(day, slot) for day, slot in self.grid.class_cells() if (day, slot.start) not in used]
        filled = []
        for i, (day, slot) in enumerate(empty):
            unit = DemandUnit(f'gap-{i}', courses[i % len(courses)].id,
                              faculty[i % len(faculty)].id, batches[i % len(batches)].id,
                              i, is_filler=True)
            room = rooms[i % len(rooms)]
            filled.append(self.place(unit, Candidate(day, slot, None, room.id, 0)))
        if filled:
            logger.info('Gap filler added %d placement(s)', len(filled))
        return filled

    def statistics(self):
        stats = ScheduleStatistics()
        for assignment in self.snapshot.assignments:
            stats.total_assignments += 1
            stats.required_hours += assignment.required_hours
            done = self.scheduled_hours[assignment.id]
            stats.scheduled_hours += done
            if done >= assignment.required_hours:
                stats.fully_scheduled += 1
            else:
                stats.partially_scheduled += 1
        stats.total_slots_created = len(self.placements)
        stats.filler_slots = sum(1 for record in self.placements if record.is_filler)
        stats.conflicts = len(self.conflicts)
        return stats

    def run(self, run_id=None):
        self.run_id = run_id
        self.ledger.clear()
        self.selector.room_cursor = 0
        self.selector.assignment_days.clear()
        self.placements = []
        self.conflicts = []
        self.scheduled_hours = Counter()
        self.unplaced_fillers = 0
        plan = expand_demand(self.snapshot, self.grid, self.config.synthesize_fillers)
        self._main_pass(plan.required_units)
        if plan.filler_units:
            self._main_pass(plan.filler_units)
        if self.config.fill_gaps:
            self.fill_gaps()

        stats = self.statistics()
        logger.info('Run %s: %d/%d assignments fully scheduled, %d slots, %d conflicts',
                    run_id, stats.fully_scheduled, stats.total_assignments,
                    stats.total_slots_created, stats.conflicts)
        return ScheduleResult(list(self.placements), list(self.conflicts), stats,
                              dict(self.scheduled_hours))
