"""
Mold KPI engine.

Derives operational KPIs from injection-molding telemetry for a machine /
mold / time-window selection and serves them over a FastAPI surface.
"""

__version__ = "1.0.0"
