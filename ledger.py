"""Run-scoped busy sets for faculty, batches, rooms and courses."""
from collections import defaultdict

from errors import LedgerConflict

FACULTY = 'faculty'
BATCH = 'batch'
ROOM = 'room'
COURSE = 'course'
DIMENSIONS = (FACULTY, BATCH, ROOM, COURSE)


class AvailabilityLedger:
    """In-memory ledger keyed by (dimension, key, day, start time).

    One instance per generation run. Not thread safe; a run is single threaded.
    """

    def __init__(self):
        self._busy = {dimension: set() for dimension in DIMENSIONS}
        # faculty_id -> day -> set of start times, for the scorer
        self._faculty_days = defaultdict(lambda: defaultdict(set))

    def _check(self, dimension):
        if dimension not in self._busy:
            raise ValueError(f'Unknown ledger dimension {dimension!r}')

    def is_free(self, dimension, key, day, time):
        self._check(dimension)
        return (key, day, time) not in self._busy[dimension]

    def reserve(self, dimension, key, day, time):
        self._check(dimension)
        entry = (key, day, time)
        if entry in self._busy[dimension]:
            raise LedgerConflict(dimension, key, day, time)
        self._busy[dimension].add(entry)
        if dimension == FACULTY:
            self._faculty_days[key][day].add(time)

    def is_placeable(self, faculty_id, batch_id, course_id, room_id, day, time):
        return (self.is_free(FACULTY, faculty_id, day, time)
                and self.is_free(BATCH, batch_id, day, time)
                and self.is_free(COURSE, course_id, day, time)
                and self.is_free(ROOM, room_id, day, time))

    def reserve_all(self, faculty_id, batch_id, course_id, room_id, day, time):
        if not self.is_placeable(faculty_id, batch_id, course_id, room_id, day, time):
            for dimension, key in ((FACULTY, faculty_id), (BATCH, batch_id),
                                   (COURSE, course_id), (ROOM, room_id)):
                if not self.is_free(dimension, key, day, time):
                    raise LedgerConflict(dimension, key, day, time)
        self.reserve(FACULTY, faculty_id, day, time)
        self.reserve(BATCH, batch_id, day, time)
        self.reserve(COURSE, course_id, day, time)
        self.reserve(ROOM, room_id, day, time)

    def faculty_busy(self, faculty_id, day, time):
        return time in self._faculty_days[faculty_id][day]

    def faculty_load(self, faculty_id, day):
        return len(self._faculty_days[faculty_id][day])

    def busy_count(self, dimension):
        self._check(dimension)
        return len(self._busy[dimension])

    def clear(self):
        for entries in self._busy.values():
            entries.clear()
        self._faculty_days.clear()
