"""Holidays module — holiday calendar and the working-day gate."""
