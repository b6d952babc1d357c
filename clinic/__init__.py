"""
Clinic Scheduling API

A FastAPI service for patient records, doctor availability and consultation
booking, with role-based and record-scoped access control.
"""

__version__ = "1.0.0"
