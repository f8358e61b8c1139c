"""HR Desk — employee lifecycle workflow engine (onboarding, leave, helpdesk)."""

__version__ = "1.0.0"
