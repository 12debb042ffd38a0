"""Occurrence matching and duplicate-suppressed delivery of weekly rules."""
