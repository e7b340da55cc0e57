"""Semantic query compiler for FactLens."""

from factlens.compiler.pipeline import CompilationPipeline, CompilationResult

__all__ = [
    "CompilationPipeline",
    "CompilationResult",
]
