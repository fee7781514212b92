"""Scheduled database backups to an S3-compatible object store.

This package provides:
- Backup cadences and key naming
- Due-time tracking seeded from the object store
- Count-based retention per cadence
- Orchestration of a single backup cycle and the minute-aligned tick loop
"""
