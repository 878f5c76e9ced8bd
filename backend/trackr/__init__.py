"""Trackr notification engine: due-date scans and assignment dispatch."""
