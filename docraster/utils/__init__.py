"""Shared helpers: logging, subprocess invocation and job concurrency."""
