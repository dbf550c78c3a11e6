"""Exceptions raised by the scheduling core and the services around it."""


class SchedulingError(Exception):
    """Base class for every timetable error."""

    status_code = 500


class ValidationError(SchedulingError, ValueError):
    status_code = 400


class NoAssignmentsFound(SchedulingError):
    status_code = 422

    def __init__(self, academic_year, semester):
        super().__init__(
            f'No course assignments found for {academic_year} semester {semester}')
        self.academic_year = academic_year
        self.semester = semester


class NoRoomsAvailable(SchedulingError):
    status_code = 422

    def __init__(self):
        super().__init__('No active rooms found')


class NoCandidateSlot(SchedulingError):
    """No legal (day, slot, room) exists for a demand unit. Recorded as a conflict."""

    def __init__(self, unit, reason='no free slot'):
        super().__init__(f'Could not place assignment {unit.assignment_id}: {reason}')
        self.unit = unit
        self.reason = reason


class LedgerConflict(SchedulingError):
    def __init__(self, dimension, key, day, time):
        super().__init__(f'{dimension} {key} already booked on day {day} at {time}')
        self.dimension = dimension
        self.key = key
        self.day = day
        self.time = time


class SubstituteNotFound(SchedulingError):
    status_code = 404

    def __init__(self, faculty_id, reason=None):
        super().__init__(reason or f'No substitute found for faculty {faculty_id}')
        self.faculty_id = faculty_id


class PersistenceFailure(SchedulingError):
    status_code = 500

    def __init__(self, run_id, cause):
        super().__init__(f'Failed to persist timetable run {run_id}: {cause}')
        self.run_id = run_id
        self.cause = cause


class RunInProgress(SchedulingError):
    status_code = 409

    def __init__(self, academic_year, semester):
        super().__init__(
            f'A timetable run for {academic_year} semester {semester} is already in progress')


class RunNotFound(SchedulingError):
    status_code = 404

    def __init__(self, run_id):
        super().__init__(f'Timetable run {run_id} not found')
        self.run_id = run_id


class InvalidRunState(SchedulingError):
    status_code = 409


class LeaveNotFound(SchedulingError):
    status_code = 404

    def __init__(self, leave_id):
        super().__init__(f'Leave {leave_id} not found')
        self.leave_id = leave_id


class InvalidLeaveTransition(SchedulingError):
    status_code = 409

    def __init__(self, leave_id, current, target):
        super().__init__(f'Leave {leave_id} is {current}; cannot move to {target}')
        self.leave_id = leave_id
        self.current = current
        self.target = target
