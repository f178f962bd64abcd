"""Core (UI-agnostic) DataFeed dashboard logic.

This package contains:
- sheet access (Google Sheets -> raw rows)
- row normalization and role-based filtering
- KPI aggregation (target / actual / achievement)
- sample-data fallback and chart helpers (labeled series, Altair -> Vega-Lite)
"""
