"""Shared infrastructure for timebox_sync: configuration, logging, time and async helpers."""
