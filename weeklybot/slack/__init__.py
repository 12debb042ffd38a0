"""Slack delivery channel."""

from weeklybot.slack.webhook import SlackWebhookNotifier

__all__ = ["SlackWebhookNotifier"]
