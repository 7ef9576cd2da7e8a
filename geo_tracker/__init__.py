"""
Geo Tracker - segments a live position stream into bounded travel history
"""

__version__ = "1.0.0"
