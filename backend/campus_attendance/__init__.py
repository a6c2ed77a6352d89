"""Attendance pairing, monthly aggregation and PDF report exports."""

__version__ = "0.1.0"
