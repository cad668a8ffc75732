"""Report building, scoring and rendering."""
