import io
import unittest

import pandas as pd

from exports import timetable_frame, to_excel_bytes, to_pdf_bytes
from time_grid import DEFAULT_GRID

ENTRY = {
    'day_of_week': 1,
    'start_time': '08:30',
    'course_code': 'CS101',
    'faculty_name': 'Asha Rao',
    'room_code': 'R1',
    'substitute_for_faculty_id': None,
}


class TestTimetableFrame(unittest.TestCase):

    def test_empty_week_layout(self):
        frame = timetable_frame([], DEFAULT_GRID)
        self.assertEqual(frame.shape, (12, 6))
        self.assertEqual(list(frame.columns)[0], 'Monday')
        self.assertEqual(frame.index[0], '08:30 - 09:15')
        self.assertEqual(frame.at['10:45 - 11:00', 'Monday'], 'BREAK')
        self.assertEqual(frame.at['13:15 - 14:00', 'Friday'], 'LUNCH')
        self.assertEqual(frame.at['13:15 - 14:00', 'Saturday'], '')
        self.assertEqual(frame.at['16:15 - 17:00', 'Wednesday'], '')

    def test_cell_text(self):
        substitute = dict(ENTRY, day_of_week=2, faculty_name='Bala Iyer', substitute_for_faculty_id=1)
        frame = timetable_frame([ENTRY, substitute], DEFAULT_GRID)
        self.assertEqual(frame.at['08:30 - 09:15', 'Monday'], 'CS101\nAsha Rao\nR1')
        self.assertEqual(frame.at['08:30 - 09:15', 'Tuesday'], 'CS101\nBala Iyer (sub)\nR1')

    def test_entries_off_grid_ignored(self):
        frame = timetable_frame([dict(ENTRY, start_time='07:00')], DEFAULT_GRID)
        self.assertEqual(frame.at['08:30 - 09:15', 'Monday'], '')


class TestFileExports(unittest.TestCase):

    def setUp(self):
        self.frame = timetable_frame([ENTRY], DEFAULT_GRID)

    def test_excel(self):
        data = to_excel_bytes(self.frame, 'CS-A')
        self.assertTrue(data.startswith(b'PK'))
        back = pd.read_excel(io.BytesIO(data), sheet_name='CS-A', index_col=0)
        self.assertEqual(list(back.columns), list(self.frame.columns))
        self.assertEqual(back.at['08:30 - 09:15', 'Monday'], 'CS101\nAsha Rao\nR1')

    def test_excel_sheet_title_is_cleaned(self):
        data = to_excel_bytes(self.frame, 'CSE 2/A [evening]: *?')
        sheets = pd.read_excel(io.BytesIO(data), sheet_name=None)
        self.assertEqual(list(sheets), ['CSE 2-A -evening-- --'])
        long_name = to_excel_bytes(self.frame, 'B' * 40)
        self.assertEqual(list(pd.read_excel(io.BytesIO(long_name), sheet_name=None)), ['B' * 31])

    def test_pdf(self):
        data = to_pdf_bytes(self.frame, 'Timetable - CS-A Ω')
        self.assertTrue(data.startswith(b'%PDF'))


if __name__ == '__main__':
    unittest.main()
