"""Core infrastructure: configuration, logging, atomics, statistics, security."""
