"""HTTP API exposing the dashboard payloads."""
