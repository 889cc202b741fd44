"""Scan pipeline: probes, checks, scoring and orchestration."""
