"""Weekly time grid: which slots exist on which day and what they are for."""
from models import DAY_NAMES, TimeSlotDefinition
from errors import ValidationError

MORNING = 'morning'
EARLY_AFTERNOON = 'early_afternoon'
LATE_AFTERNOON = 'late_afternoon'

# Class slots right after lunch that still count as early afternoon
EARLY_AFTERNOON_SLOTS = 3

_MORNING = [
    ('08:30', '09:15', 'class'),
    ('09:15', '10:00', 'class'),
    ('10:00', '10:45', 'class'),
    ('10:45', '11:00', 'break'),
    ('11:00', '11:45', 'class'),
    ('11:45', '12:30', 'class'),
    ('12:30', '13:15', 'class'),
    ('13:15', '14:00', 'lunch'),
]
_AFTERNOON = [
    ('14:00', '14:45', 'class'),
    ('14:45', '15:30', 'class'),
    ('15:30', '16:15', 'class'),
    ('16:15', '17:00', 'class'),
]
_SATURDAY = [
    ('08:30', '09:15', 'class'),
    ('09:15', '10:00', 'class'),
    ('10:00', '10:45', 'class'),
    ('10:45', '11:00', 'break'),
    ('11:00', '11:45', 'class'),
]


class TimeGrid:
    """Immutable per-day slot lists.

    ``slots`` is a list of TimeSlotDefinition; ``prefer_morning_light`` names
    the days whose mornings get a small scoring bonus.
    """

    def __init__(self, slots, prefer_morning_light=()):
        by_day = {}
        for slot in slots:
            by_day.setdefault(slot.day, []).append(slot)
        for day, day_slots in by_day.items():
            day_slots.sort(key=lambda s: s.start)
            for prev, nxt in zip(day_slots, day_slots[1:]):
                if nxt.start < prev.end:
                    raise ValidationError(
                        f'{DAY_NAMES[day]}: slot {nxt.label} overlaps {prev.label}')
        self._all = {day: tuple(by_day[day]) for day in sorted(by_day)}
        self._class = {day: tuple(s for s in day_slots if s.kind == 'class')
                       for day, day_slots in self._all.items()}
        self._prefer_morning_light = frozenset(prefer_morning_light)

        counts = {day: len(s) for day, s in self._class.items() if s}
        fewest = min(counts.values()) if counts else 0
        # every day is "shortest" when they are all the same length
        if counts and fewest != max(counts.values()):
            self._shortest = frozenset(d for d, c in counts.items() if c == fewest)
        else:
            self._shortest = frozenset()

    def days(self):
        return [day for day, slots in self._class.items() if slots]

    def all_slots(self, day):
        return list(self._all.get(day, ()))

    def class_slots(self, day):
        return list(self._class.get(day, ()))

    def class_cells(self):
        """Every (day, slot) usable for placement, day-then-slot order."""
        return [(day, slot) for day in self.days() for slot in self._class[day]]

    def total_class_slots(self):
        return sum(len(slots) for slots in self._class.values())

    def slot_at(self, day, start):
        for slot in self._all.get(day, ()):
            if slot.start == start:
                return slot
        return None

    def shortest_days(self):
        return set(self._shortest)

    def is_shortest_day(self, day):
        return day in self._shortest

    def is_prefer_morning_light(self, day):
        return day in self._prefer_morning_light

    def block_of(self, day, index):
        """Morning / early afternoon / late afternoon for a class slot index."""
        class_slots = self._class[day]
        lunch = next((s for s in self._all[day] if s.kind == 'lunch'), None)
        if lunch is None:
            return MORNING
        before_lunch = sum(1 for s in class_slots if s.end <= lunch.start)
        if index < before_lunch:
            return MORNING
        if index < before_lunch + EARLY_AFTERNOON_SLOTS:
            return EARLY_AFTERNOON
        return LATE_AFTERNOON

    def times(self):
        """Distinct slot start times across the week, for rendering rows."""
        return sorted({s.start for slots in self._all.values() for s in slots})

    def as_dict(self):
        return {
            'days': [{'day': day, 'name': DAY_NAMES[day],
                      'slots': [{'start': s.start, 'end': s.end, 'kind': s.kind} for s in slots]}
                     for day, slots in self._all.items()],
            'total_class_slots': self.total_class_slots(),
        }


def build_default_grid():
    slots = []
    for day in (1, 2, 3, 4, 5):
        afternoon = _AFTERNOON[:2] if day == 3 else _AFTERNOON
        for start, end, kind in _MORNING + afternoon:
            slots.append(TimeSlotDefinition(day, start, end, kind))
    for start, end, kind in _SATURDAY:
        slots.append(TimeSlotDefinition(6, start, end, kind))
    return TimeGrid(slots, prefer_morning_light={3})


DEFAULT_GRID = build_default_grid()
