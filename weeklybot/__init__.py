"""weeklybot - weekly Slack reminders with duplicate-safe delivery."""

__version__ = "0.3.0"
__logo__ = "🔔"
