"""Shared helpers: logging, errors, HTTP transport and concurrency primitives."""
