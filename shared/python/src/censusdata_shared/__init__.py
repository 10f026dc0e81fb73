"""
censusdata_shared — shared configuration, store access, and models for censusdata.

Usage:
    from censusdata_shared.config import settings
    from censusdata_shared.db import get_duckdb_connection
    from censusdata_shared.models import GeographyRecord, SummaryLevel, Year
    from censusdata_shared.constants import SUMMARY_LEVEL_CODES
"""

__version__ = "0.1.0"
