"""Recurring task materialization."""
