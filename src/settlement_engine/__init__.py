"""Settlement reconciliation engine for piece-rate payroll periods."""

__version__ = "0.1.0"
