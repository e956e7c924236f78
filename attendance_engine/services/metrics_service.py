from datetime import date
from typing import Dict, List, Optional
import csv
import io

from attendance_engine.models.metrics import AttendanceMetrics, HistoryRecord, RecordMetrics
from attendance_engine.models.schedule import ShiftTemplate, ToleranceSettings
from attendance_engine.services.shift_service import anchor_shift, classify_checkin, default_tolerance
from attendance_engine.services.worked_time_service import calculate_worked_time

def scheduled_hours_for(template: ShiftTemplate, on_date: date) -> float:
    """Scheduled hours of a shift: explicit duration when given, otherwise its window length"""
    if template.duration_hours is not None and template.duration_hours > 0:
        return template.duration_hours
    start, end = anchor_shift(template, on_date)
    return (end - start).total_seconds() / 3600

def calculate_record_metrics(item: HistoryRecord, tolerance: ToleranceSettings) -> Optional[RecordMetrics]:
    """Scheduled vs attended hours for one historical record, using its own in/out"""
    record = item.record
    if item.template is None:
        return None

    start, end = anchor_shift(item.template, record.date)
    scheduled = scheduled_hours_for(item.template, record.date)

    if record.time_in is None:
        return RecordMetrics(date=record.date, schedule_id=record.schedule_id,
                             scheduled_hours=scheduled, attended_hours=0.0, status="absent")

    # An open historical record has no checkout to measure against, so it contributes nothing
    reference = record.time_out or record.time_in
    worked = calculate_worked_time(start, end, [(record.time_in, record.time_out or record.time_in)], reference)
    attended = min(scheduled, worked.worked_ms / 3_600_000)

    status = record.status if record.status in ("present", "late") else classify_checkin(start, record.time_in, tolerance)

    return RecordMetrics(date=record.date, schedule_id=record.schedule_id,
                         scheduled_hours=scheduled, attended_hours=attended, status=status)

def aggregate_attendance_metrics(records: List[HistoryRecord], range_start: date, range_end: date,
                                 tolerance: Optional[ToleranceSettings] = None) -> AttendanceMetrics:
    """
    Hour-based attendance for a date range: hours attended over hours scheduled.

    A half-attended shift counts as half. Present/late/absent day counts are
    separate display tallies and do not feed the percentage.
    """
    tolerance = tolerance or default_tolerance()
    in_range = [r for r in records if range_start <= r.record.date <= range_end]

    rows = []
    for item in sorted(in_range, key=lambda r: (r.record.date, r.record.time_in is None, r.record.time_in)):
        row = calculate_record_metrics(item, tolerance)
        if row is not None:
            rows.append(row)

    scheduled_total = sum(r.scheduled_hours for r in rows)
    attended_total = sum(r.attended_hours for r in rows)

    if scheduled_total > 0:
        percentage = round(attended_total / scheduled_total * 100, 1)
        percentage = max(0.0, min(100.0, percentage))
    else:
        percentage = 0.0

    # First check-in of a day decides whether the day counts as late
    first_status_by_day: Dict[date, str] = {}
    scheduled_days = set()
    for row in rows:
        scheduled_days.add(row.date)
        if row.status != "absent" and row.date not in first_status_by_day:
            first_status_by_day[row.date] = row.status

    return AttendanceMetrics(
        range_start=range_start,
        range_end=range_end,
        scheduled_hours=round(scheduled_total, 2),
        attended_hours=round(attended_total, 2),
        attendance_percentage=percentage,
        present_days=len(first_status_by_day),
        late_days=sum(1 for status in first_status_by_day.values() if status == "late"),
        absent_days=len(scheduled_days - set(first_status_by_day)),
        total_records=len(rows),
        records=rows,
    )

def generate_metrics_csv(metrics: AttendanceMetrics) -> str:
    """Generate CSV format for attendance export"""

    output = io.StringIO()
    writer = csv.writer(output)

    # Header
    writer.writerow(['Date', 'Schedule ID', 'Status', 'Scheduled Hours', 'Attended Hours'])

    # Data rows
    for row in metrics.records:
        writer.writerow([
            row.date.isoformat(),
            row.schedule_id if row.schedule_id is not None else '',
            row.status,
            round(row.scheduled_hours, 2),
            round(row.attended_hours, 2)
        ])

    # Totals
    writer.writerow([
        f"{metrics.range_start.isoformat()} to {metrics.range_end.isoformat()}",
        '',
        f"{metrics.attendance_percentage}%",
        metrics.scheduled_hours,
        metrics.attended_hours
    ])

    return output.getvalue()
