"""Dispatcher module: turns object-creation events into transcoding jobs."""
