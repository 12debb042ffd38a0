"""Periodic timers that trigger evaluation passes."""
