"""
Excel import/export for trainee rosters and attendance reports.
"""
import io

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Font, PatternFill, Alignment, Border, Side

from app.workflows import ValidationError

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

ATTENDANCE_HEADERS = ['Trainee ID', 'Name', 'Email', 'Attendance', 'Date']


def _cell_text(row, column) -> str:
    if column is None:
        return ''
    value = row[column]
    if pd.isna(value):
        return ''
    return str(value).strip()


def read_roster(contents: bytes) -> list:
    """
    Read trainees from the first sheet of an Excel file.
    Columns ``name``/``Name`` and ``email``/``Email`` are recognised; rows
    without a name get a numbered placeholder.
    """
    try:
        df = pd.read_excel(io.BytesIO(contents))
    except Exception as exc:
        raise ValidationError(
            'Error reading Excel file. Please make sure it has "name" and "email" columns.',
            'roster_file'
        ) from exc

    columns = {str(c).strip().lower(): c for c in df.columns}
    name_col = columns.get('name')
    email_col = columns.get('email')

    trainees = []
    for _, row in df.iterrows():
        name = _cell_text(row, name_col)
        email = _cell_text(row, email_col)
        trainees.append({
            'name': name or f"Trainee {len(trainees) + 1}",
            'email': email or None,
        })
    return trainees


def attendance_workbook(attendance_date: str, students: list) -> bytes:
    """Build the attendance sheet for one batch and date as .xlsx bytes."""
    wb = Workbook()
    ws = wb.active
    ws.title = "Attendance"

    header_fill = PatternFill(start_color="4472C4", end_color="4472C4", fill_type="solid")
    header_font = Font(bold=True, color="FFFFFF")
    thin_border = Border(
        left=Side(style='thin'),
        right=Side(style='thin'),
        top=Side(style='thin'),
        bottom=Side(style='thin')
    )

    for col, header in enumerate(ATTENDANCE_HEADERS, 1):
        cell = ws.cell(row=1, column=col, value=header)
        cell.fill = header_fill
        cell.font = header_font
        cell.alignment = Alignment(horizontal='center')
        cell.border = thin_border

    for row_idx, student in enumerate(students, 2):
        values = [
            student['id'],
            student['name'],
            student.get('email') or 'N/A',
            'Present' if student.get('present') else 'Absent',
            attendance_date,
        ]
        for col_idx, value in enumerate(values, 1):
            cell = ws.cell(row=row_idx, column=col_idx, value=value)
            cell.border = thin_border

    ws.column_dimensions['B'].width = 28
    ws.column_dimensions['C'].width = 32

    output = io.BytesIO()
    wb.save(output)
    return output.getvalue()


def attendance_filename(batch_name: str, attendance_date: str) -> str:
    safe_name = "".join(c if c.isalnum() or c in "-_" else "_" for c in batch_name)
    return f"{safe_name}_Attendance_{attendance_date}.xlsx"
