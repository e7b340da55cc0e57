"""YAML catalog loading for the FactLens semantic layer."""

from factlens.parser.loader import CatalogError, CatalogLoader, YAMLSafetyError

__all__ = [
    "CatalogError",
    "CatalogLoader",
    "YAMLSafetyError",
]
