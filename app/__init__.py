"""
Clinic Appointment Scheduling

A FastAPI-based backend where patients book appointments with doctors,
doctors publish availability and triage requests, and administrators manage
accounts and appointment records.
"""

__version__ = "1.0.0"
