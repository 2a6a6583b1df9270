"""Shared UI state: schema, patch merging and the notification queue."""
