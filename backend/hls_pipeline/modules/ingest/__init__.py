"""Ingestion module: queue message parsing and the filename contract."""
