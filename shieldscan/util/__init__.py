"""Shared helpers: types, config, logging, time, concurrency."""
