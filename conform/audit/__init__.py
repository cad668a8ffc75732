"""Structured audit logging for conformance evaluations."""
