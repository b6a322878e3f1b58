"""
Placement Portal
PRN eligibility gating and academic-year lifecycle for a multi-college
placement portal.

Architecture:
- PostgreSQL: All structured data (colleges, users, students, PRN ranges, jobs, logs)
- S3-compatible object store: Student photographs
"""

__version__ = "1.0.0"
