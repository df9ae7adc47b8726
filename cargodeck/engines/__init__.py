"""Engines — discovery, process execution, job tracking, batching, aggregation."""
