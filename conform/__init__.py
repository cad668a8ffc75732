"""conform: compliance evaluator for generated infrastructure-as-code policies."""

__version__ = "0.1.0"
