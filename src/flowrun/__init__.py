"""flowrun: progression engine for multi-technician service procedures."""

__version__ = "1.0.0"
