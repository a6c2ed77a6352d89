class AttendanceReportError(Exception):
    """Base exception for attendance reporting failures."""


class InvalidPeriodError(AttendanceReportError, ValueError):
    """Raised when a requested report period cannot be parsed."""


class NothingToExportError(AttendanceReportError):
    """Raised when a report request selects no users or no rows."""


class ReportRenderError(AttendanceReportError):
    """Raised when no document could be produced at all."""
