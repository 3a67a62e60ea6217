"""Core (UI-agnostic) BitterGuard dashboard logic.

This package contains:
- filter normalization and query bounds (filters)
- label normalization, categories, colors and confidence parsing (labels)
- data backends (Supabase, pandas snapshots)
- page compute functions (JSON-serializable payloads)
- chart helpers (Altair -> Vega-Lite spec dict)
- report export
"""
