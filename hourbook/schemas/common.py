from enum import Enum


class Role(str, Enum):
    admin = "admin"
    manager = "manager"
    user = "user"


class TimesheetStatus(str, Enum):
    unsubmitted = "unsubmitted"
    submitted = "submitted"
    approved = "approved"
    rejected = "rejected"


class TimesheetAction(str, Enum):
    submit = "submit"
    approve = "approve"
    reject = "reject"
    unapprove = "unapprove"
    recalculate = "recalculate"
    delete = "delete"


class EntryAction(str, Enum):
    start_timer = "start_timer"
    stop_timer = "stop_timer"
