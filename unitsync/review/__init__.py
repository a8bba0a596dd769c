"""Approval gate for automated imports and field mapping review."""
