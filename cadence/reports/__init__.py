"""Scheduled workspace reports."""
