"""
Jarvis Production Tracker - Source Package

A personal production tracker for a field technician: logs installation
and service work, computes earnings, and lets the technician talk to an
assistant ("Jarvis") that turns free text into structured records.

DESIGN PRINCIPLES:
1. Local cache first, remote table second
2. List/Add/Delete always return a record list, never an error
3. The LLM only proposes drafts; the Record Store creates records
4. Prices are snapshotted when a record is created
5. Storage backend is swappable
"""

__version__ = "1.0.0"
__author__ = "Jarvis Production Tracker Team"
