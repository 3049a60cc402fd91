from datetime import date as _date
from typing import Optional

from hourbook.schemas.timesheet_schema import CamelModel


class ReportGroupOut(CamelModel):
    key: Optional[str] = None
    label: str
    hours: float
    billable_hours: float
    non_billable_hours: float
    entry_count: int


class ReportRowOut(CamelModel):
    timesheet_id: str
    entry_key: str
    date: _date
    status: Optional[str] = None
    user_id: str
    user_name: str
    project_id: str
    project_name: str
    client_id: Optional[str] = None
    client_name: str
    task_id: Optional[str] = None
    task_name: Optional[str] = None
    hours: float
    is_billable: bool
    notes: str = ""


class ReportSummaryOut(CamelModel):
    hours: float
    billable_hours: float
    non_billable_hours: float
    entry_count: int
    capacity_hours: float
    utilization: int


class TimeReportOut(CamelModel):
    start_date: _date
    end_date: _date
    group_by: str
    summary: ReportSummaryOut
    groups: list[ReportGroupOut]
    rows: list[ReportRowOut] = []


class CronResultOut(CamelModel):
    success: bool = True
    paused: bool = False
    message: str = ""
    emails_sent: int = 0
    emails_failed: int = 0
    users_checked: int = 0
    users_with_no_hours: int = 0
