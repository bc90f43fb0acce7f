"""Storage backends for metric points. See base.py for the backend contract."""
