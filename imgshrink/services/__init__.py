"""Orchestration services built on the storage layer."""
