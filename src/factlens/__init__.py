"""FactLens: semantic query compiler for facts, dimensions, and KPIs."""

__version__ = "0.4.0"
