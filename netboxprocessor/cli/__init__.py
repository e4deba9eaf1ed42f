"""Command-line entry points for netboxprocessor."""
