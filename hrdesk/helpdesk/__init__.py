"""Helpdesk module — ticket lifecycle, comments and ratings."""
