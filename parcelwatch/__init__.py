"""
ParcelWatch.
Polls a parcel-tracking provider and reports what changed for each tracked parcel.
"""

__version__ = "1.0.0"
