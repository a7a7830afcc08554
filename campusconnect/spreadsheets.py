"""
Spreadsheet import/export (xlsx via openpyxl)

Bulk schedule import reads the first sheet with a header row; the column
names below (and their lower-case aliases) are the file format contract.
"""

import datetime
import io
import logging
import re

from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font

logger = logging.getLogger(__name__)

# field -> accepted header names, first one is what the template writes
SCHEDULE_COLUMNS = {
    "title": ["Title", "title"],
    "subject": ["Subject", "subject"],
    "teacher_name": ["Teacher Name", "teacher_name", "Teacher"],
    "day_of_week": ["Day", "day", "Day of Week"],
    "start_time": ["Start Time", "start_time", "Start"],
    "end_time": ["End Time", "end_time", "End"],
    "room_location": ["Room", "room_location", "Location"],
    "target_year": ["Year", "year"],
    "target_section": ["Section", "section"],
    "target_branch": ["Branch", "branch"],
    "target_department": ["Department", "department"],
}

DAYS_MAP = {
    "sunday": 0, "sun": 0,
    "monday": 1, "mon": 1,
    "tuesday": 2, "tue": 2,
    "wednesday": 3, "wed": 3,
    "thursday": 4, "thu": 4,
    "friday": 5, "fri": 5,
    "saturday": 6, "sat": 6,
}

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]

DEFAULT_START = "09:00"
DEFAULT_END = "10:00"

TEMPLATE_ROWS = [
    ["Data Structures Lecture", "Computer Science", "Dr. Smith", "Monday", "09:00", "10:00",
     "Room 101", 2, "A", "CSE", "Engineering"],
    ["Physics Lab", "Physics", "Prof. Johnson", "Tuesday", "14:00", "16:00",
     "Lab 3", 1, "B", "ECE", "Engineering"],
]

USER_EXPORT_HEADERS = [
    "Full Name", "Email", "Phone Number", "Student ID", "Roll Number", "Role",
    "Department", "Year", "Course", "Section", "Branch", "Bio", "Daily Streak",
    "Connections", "Last Activity", "Created At", "Updated At",
]

HHMM_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})(?::\d{2})?$")


class SpreadsheetError(Exception):
    """The uploaded file is not a readable workbook"""


# ============================================================================
# CELL PARSERS
# ============================================================================

def _blank(value):
    return value is None or (isinstance(value, str) and not value.strip())


def _format_time(hours, minutes):
    if 0 <= hours < 24 and 0 <= minutes < 60:
        return f"{hours:02d}:{minutes:02d}"
    return None


def parse_time(value):
    """
    Normalize a time cell to HH:MM, or None when it cannot be read.

    Accepts time/datetime cells, "H:MM", "HHMM" and Excel day fractions.
    """
    if isinstance(value, datetime.datetime):
        return _format_time(value.hour, value.minute)
    if isinstance(value, datetime.time):
        return _format_time(value.hour, value.minute)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if 0 <= value < 1:
            total_minutes = round(value * 24 * 60)
            return _format_time((total_minutes // 60) % 24, total_minutes % 60)
        value = str(int(value)) if float(value).is_integer() else str(value)

    cleaned = str(value).strip()
    match = HHMM_PATTERN.match(cleaned)
    if match:
        return _format_time(int(match.group(1)), int(match.group(2)))
    if re.match(r"^\d{3,4}$", cleaned):
        cleaned = cleaned.zfill(4)
        return _format_time(int(cleaned[:2]), int(cleaned[2:]))
    return None


def parse_day(value):
    """Day name, 3-letter abbreviation or 0-6 (0 = Sunday); None if unknown"""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        if float(value).is_integer() and 0 <= int(value) <= 6:
            return int(value)
        return None
    cleaned = str(value).strip().lower()
    if cleaned.isdigit():
        return int(cleaned) if 0 <= int(cleaned) <= 6 else None
    return DAYS_MAP.get(cleaned)


def _cell(raw, field):
    for header in SCHEDULE_COLUMNS[field]:
        if header in raw and not _blank(raw[header]):
            return raw[header]
    return None


def _text(value):
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value).strip()


def parse_schedule_row(raw):
    """
    Map one header->value dict to schedule fields.

    Returns (fields, errors); the row is importable only when errors is empty.
    """
    errors = []
    fields = {
        "title": _text(_cell(raw, "title")),
        "subject": _text(_cell(raw, "subject")),
        "teacher_name": _text(_cell(raw, "teacher_name")) or None,
        "room_location": _text(_cell(raw, "room_location")) or None,
        "target_section": _text(_cell(raw, "target_section")) or None,
        "target_branch": _text(_cell(raw, "target_branch")) or None,
        "target_department": _text(_cell(raw, "target_department")) or None,
    }

    if not fields["title"]:
        errors.append("Title required")
    if not fields["subject"]:
        errors.append("Subject required")

    day = _cell(raw, "day_of_week")
    fields["day_of_week"] = parse_day(day) if day is not None else None
    if fields["day_of_week"] is None:
        errors.append("Invalid day")

    start = _cell(raw, "start_time")
    end = _cell(raw, "end_time")
    fields["start_time"] = parse_time(start) if start is not None else DEFAULT_START
    fields["end_time"] = parse_time(end) if end is not None else DEFAULT_END
    if fields["start_time"] is None:
        errors.append("Invalid start time")
    if fields["end_time"] is None:
        errors.append("Invalid end time")
    if fields["start_time"] and fields["end_time"] and fields["end_time"] <= fields["start_time"]:
        errors.append("End time must be after start time")

    year = _cell(raw, "target_year")
    fields["target_year"] = None
    if year is not None:
        try:
            fields["target_year"] = int(float(str(year).strip()))
        except (ValueError, OverflowError):
            errors.append("Invalid year")

    return fields, errors


# ============================================================================
# WORKBOOK IO
# ============================================================================

def read_rows(file_obj):
    """
    First sheet as a list of (row_number, {header: value}); blank rows skipped.
    Row numbers match what the user sees in the spreadsheet.
    """
    try:
        workbook = load_workbook(file_obj, read_only=True, data_only=True)
    except Exception as e:
        logger.warning(f"Unreadable workbook: {e}")
        raise SpreadsheetError("Could not read spreadsheet. Upload an .xlsx file.")

    try:
        sheet = workbook.worksheets[0]
        rows = sheet.iter_rows(values_only=True)
        header = next(rows, None)
        if not header:
            return []
        headers = [_text(h) for h in header]

        parsed = []
        for offset, values in enumerate(rows, start=2):
            if all(_blank(v) for v in values):
                continue
            parsed.append((offset, {h: v for h, v in zip(headers, values) if h}))
        return parsed
    finally:
        workbook.close()


def build_workbook(sheet_title, headers, rows):
    """Single-sheet workbook as bytes with a bold header row"""
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = sheet_title
    sheet.append(headers)
    for cell in sheet[1]:
        cell.font = Font(bold=True)
    for row in rows:
        sheet.append(row)

    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def schedule_template():
    headers = [aliases[0] for aliases in SCHEDULE_COLUMNS.values()]
    return build_workbook("Schedules", headers, TEMPLATE_ROWS)


def _iso(value):
    return value.isoformat() if value else None


def user_export(profiles):
    rows = []
    for p in profiles:
        rows.append([
            p.full_name, p.email, p.phone_number, p.student_number, p.institution_roll_number,
            p.user.role, p.department, p.year_of_study, p.course, p.section, p.branch, p.bio,
            p.daily_streak, p.connections_count, _iso(p.last_activity_date),
            _iso(p.created_at), _iso(p.updated_at),
        ])
    return build_workbook("Users", USER_EXPORT_HEADERS, rows)
