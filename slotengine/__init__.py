"""
slotengine - timezone-correct meeting slot search on top of Google Calendar.
"""

__version__ = "0.1.0"
