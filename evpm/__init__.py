"""Core (UI-agnostic) sales-performance dashboard logic.

This package contains:
- data ingestion (backend / spreadsheet records -> typed pandas frames)
- filter state, access scope and drill-down hierarchy
- aggregation of plan vs achievement and time-gone pacing
- page compute functions (JSON-serializable payloads)
- chart helpers (Altair -> Vega-Lite spec dict)
- backend client, persisted app state and sync coordination
"""
