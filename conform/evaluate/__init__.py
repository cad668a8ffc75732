"""Rule evaluation and reference comparison."""
