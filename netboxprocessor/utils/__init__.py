"""Utility helpers for netboxprocessor."""
