"""
geotarget: geographic hierarchy resolution and location-scoped content
targeting for a business directory.
"""

__version__ = "1.0.0"
