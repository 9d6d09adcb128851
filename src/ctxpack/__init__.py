"""
ctxpack - context budgeting pipeline for LLM-driven code transformations.

Selects, ranks and packs the most relevant fragments of a repository into a
fixed token budget.
"""

__version__ = "0.3.0"
