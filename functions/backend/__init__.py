"""
Backend package for the CA firm admin API.

This package provides a FastAPI application over the same Firestore data
the React admin panel edits, plus the Firebase client wiring shared with
the Cloud Functions in main.py.
"""
