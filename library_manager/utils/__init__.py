"""Validation rules, pagination links and CLI output helpers."""
