"""Onboarding module — Employee admission pipeline and its audit record."""
