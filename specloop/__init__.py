"""
specloop - LLM-driven build-repair loop and specification review workflow.

Run from a project root to let a model propose file changes, apply them under
path-safety rules, run the project build, and feed failures back until the
build passes.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
