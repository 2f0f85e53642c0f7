"""
Test suite for the Clinic Appointment Scheduling API.

Contains unit tests for the scheduling services and integration tests for
the HTTP endpoints.
"""
import os

# Set environment for testing
os.environ["TESTING"] = "1"
