"""Recurring report and task scheduling engine."""
