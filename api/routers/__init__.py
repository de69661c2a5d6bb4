"""
Routers per API composition-processor.

Moduli:
- suggest: POST /suggest/food, POST /decompose/non-food
- extract: POST /extract
- diagnostics: GET /api/diagnostics/counters
"""
from . import diagnostics, extract, suggest

__all__ = ["suggest", "extract", "diagnostics"]
