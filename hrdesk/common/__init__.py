"""Common module — shared utilities for HR Desk.

Submodules are imported directly (``hrdesk.common.exceptions`` etc.) so that
``hrdesk.database`` can depend on the exception taxonomy without a cycle.
"""
