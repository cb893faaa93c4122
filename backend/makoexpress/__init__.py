"""
MAKOEXPRESS delivery marketplace backend.

Order lifecycle, driver commission and MakoPay settlement services exposed
through a thin FastAPI layer.
"""

__version__ = "1.0.0"
