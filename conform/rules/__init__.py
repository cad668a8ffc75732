"""Compliance rules: schema, YAML loading, registry and built-in packs."""
