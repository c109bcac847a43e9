"""
courtbook - availability and booking-slot engine for sport facilities.
"""

__version__ = "0.1.0"
