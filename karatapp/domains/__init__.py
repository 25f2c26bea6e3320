"""Domain layer (records, comment threading, catalog ordering).

Pure logic with no network access; services feed it rows fetched from the backend.
"""
