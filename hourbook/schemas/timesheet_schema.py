from datetime import date as _date, datetime
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from hourbook.schemas.common import EntryAction, TimesheetStatus


class CamelModel(BaseModel):
    # Wire format is camelCase; Python code and Mongo documents stay snake_case
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TimesheetCreateIn(CamelModel):
    date: Optional[_date] = None
    user_id: Optional[str] = None


class TimesheetActionIn(CamelModel):
    action: str
    reason: Optional[str] = None


class BulkApproveIn(CamelModel):
    timesheet_ids: list[str] = Field(default_factory=list)


class EntryIn(CamelModel):
    project_id: Optional[str] = None
    task_id: Optional[str] = None
    date: Optional[_date] = None
    hours: Optional[Union[float, str]] = None  # decimal or "H:MM"
    notes: Optional[str] = None
    start_time: Optional[datetime] = None
    is_timer: bool = False


class EntryUpdate(CamelModel):
    entry_key: Optional[str] = None
    action: Optional[EntryAction] = None
    project_id: Optional[str] = None
    task_id: Optional[str] = None  # explicit null clears the task
    date: Optional[_date] = None
    hours: Optional[Union[float, str]] = None
    notes: Optional[str] = None
    is_billable: Optional[bool] = None


class RefOut(CamelModel):
    id: str
    name: Optional[str] = None
    code: Optional[str] = None


class UserRefOut(CamelModel):
    id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None


class EntryOut(CamelModel):
    key: str
    date: _date
    project_id: str
    task_id: Optional[str] = None
    project: Optional[RefOut] = None
    task: Optional[RefOut] = None
    hours: float
    notes: str = ""
    is_billable: bool
    is_running: bool = False
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TotalsOut(CamelModel):
    total_hours: float
    billable_hours: float
    non_billable_hours: float
    has_running_timer: bool


class TimesheetOut(TotalsOut):
    id: str
    user_id: str
    user: Optional[UserRefOut] = None
    week_start: _date
    week_end: _date
    year: int
    week_number: int
    status: TimesheetStatus
    entries: list[EntryOut] = Field(default_factory=list)
    is_locked: bool = False
    submitted_at: Optional[datetime] = None
    approved_by: Optional[str] = None
    approved_at: Optional[datetime] = None
    rejected_at: Optional[datetime] = None
    rejection_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TimesheetListOut(CamelModel):
    timesheets: list[TimesheetOut]


class EntryResultOut(CamelModel):
    success: bool = True
    entry: Optional[EntryOut] = None
    totals: TotalsOut


class ActionResultOut(CamelModel):
    success: bool = True
    timesheet: Optional[TimesheetOut] = None
    totals: Optional[TotalsOut] = None


class RunningTimerOut(CamelModel):
    timesheet_id: Optional[str] = None
    week_start: Optional[_date] = None
    running_entry: Optional[EntryOut] = None


class BulkApproveOut(CamelModel):
    success: bool = True
    approved_count: int
