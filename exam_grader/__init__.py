"""
Exam Grader - an auditable exam answer grading pipeline.

This package grades candidate answers against question metadata, combining
deterministic keyword evidence with LLM-backed judgments under fixed caps,
so that a model's opinion can never outweigh what the answer demonstrably
contains.
"""

__version__ = "1.0.0"
__author__ = "Exam Grader Team"
