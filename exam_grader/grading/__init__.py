"""
Grading Module.

Per-answer grading state machine, deterministic scorers, scoring policy,
LLM-backed scoring capabilities and attempt-level aggregation.
"""

from exam_grader.grading.aggregator import AttemptAggregator
from exam_grader.grading.backends import (
    LLMReasoningScorer,
    LLMRelevanceChecker,
    LLMRuleBackedScorer,
    build_backends,
)
from exam_grader.grading.capabilities import ReasoningScorer, RelevanceChecker, RuleBackedScorer
from exam_grader.grading.engine import GradingEngine
from exam_grader.grading.llm_client import LLMClient, LLMError
from exam_grader.grading.normalizer import ResponseNormalizer, ScoringError
from exam_grader.grading.prompt_builder import PromptBuilder
from exam_grader.grading.relevance import RelevanceGate

__all__ = [
    "AttemptAggregator",
    "GradingEngine",
    "LLMClient",
    "LLMError",
    "LLMReasoningScorer",
    "LLMRelevanceChecker",
    "LLMRuleBackedScorer",
    "PromptBuilder",
    "ReasoningScorer",
    "RelevanceChecker",
    "RelevanceGate",
    "ResponseNormalizer",
    "RuleBackedScorer",
    "ScoringError",
    "build_backends",
]
