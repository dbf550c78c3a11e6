"""Excel and PDF exports of one batch's (or one faculty member's) week."""
import io
import re

import pandas as pd
from fpdf import FPDF, XPos, YPos

from models import DAY_NAMES


def _cell_text(entry):
    parts = [entry.get('course_code') or '', entry.get('faculty_name') or '', entry.get('room_code') or '']
    if entry.get('substitute_for_faculty_id'):
        parts[1] += ' (sub)'
    return '\n'.join(p for p in parts if p)


def timetable_frame(entries, grid):
    """Rows are time slots (breaks and lunch included), columns are days."""
    days = grid.days()
    rows = {}
    for day in days:
        for slot in grid.all_slots(day):
            rows.setdefault(slot.start, slot.label)
    index = [rows[start] for start in grid.times()]
    frame = pd.DataFrame('', index=index, columns=[DAY_NAMES[d] for d in days])
    frame.index.name = 'Time'

    for day in days:
        for slot in grid.all_slots(day):
            if slot.kind != 'class':
                frame.at[rows[slot.start], DAY_NAMES[day]] = slot.kind.upper()

    for entry in entries:
        day = entry['day_of_week']
        if day not in days or entry['start_time'] not in rows:
            continue
        label = rows[entry['start_time']]
        column = DAY_NAMES[day]
        text = _cell_text(entry)
        existing = frame.at[label, column]
        frame.at[label, column] = f'{existing}\n{text}' if existing else text
    return frame


def _sheet_title(name):
    # Excel forbids these characters and caps titles at 31
    return re.sub(r'[\[\]:*?/\\]', '-', str(name))[:31] or 'Timetable'


def to_excel_bytes(frame, sheet_name='Timetable'):
    buffer = io.BytesIO()
    with pd.ExcelWriter(buffer, engine='openpyxl') as writer:
        frame.to_excel(writer, sheet_name=_sheet_title(sheet_name))
    return buffer.getvalue()


def _latin1(text):
    # core PDF fonts only cover latin-1
    return str(text).encode('latin-1', 'replace').decode('latin-1')


def to_pdf_bytes(frame, title):
    pdf = FPDF(orientation='L', unit='mm', format='A4')
    pdf.set_auto_page_break(auto=False)
    pdf.add_page()
    pdf.set_font('Helvetica', 'B', 14)
    pdf.cell(0, 10, _latin1(title), align='C', new_x=XPos.LMARGIN, new_y=YPos.NEXT)

    time_width = 30
    day_width = (pdf.w - 20 - time_width) / max(len(frame.columns), 1)
    line_height = 4
    pdf.set_font('Helvetica', 'B', 9)
    pdf.cell(time_width, 8, 'Time', border=1, align='C')
    for column in frame.columns:
        pdf.cell(day_width, 8, _latin1(column), border=1, align='C')
    pdf.ln(8)

    pdf.set_font('Helvetica', '', 7)
    for label, row in frame.iterrows():
        lines = max([len(str(v).split('\n')) for v in row.values] + [1])
        height = max(lines * line_height, 8)
        if pdf.get_y() + height > pdf.h - 10:
            pdf.add_page()
        x, y = pdf.get_x(), pdf.get_y()
        pdf.rect(x, y, time_width, height)
        pdf.set_xy(x, y)
        pdf.cell(time_width, height, _latin1(label), align='C')
        for i, value in enumerate(row.values):
            cx = x + time_width + i * day_width
            pdf.rect(cx, y, day_width, height)
            for n, line in enumerate(str(value).split('\n')):
                pdf.set_xy(cx + 1, y + n * line_height)
                pdf.cell(day_width - 2, line_height, _latin1(line))
        pdf.set_xy(x, y + height)
    return bytes(pdf.output())
