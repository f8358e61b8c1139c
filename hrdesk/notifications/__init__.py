"""Notifications module — best-effort outbound messages."""
