"""Network transfer helpers."""
