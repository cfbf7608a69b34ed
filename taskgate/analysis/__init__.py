"""
TASKGATE Analysis

Token-stream static analysis: complexity and unused-code heuristics that
emit normalized Suggestion records.
"""

from taskgate.analysis.complexity import ComplexityScanner
from taskgate.analysis.suggestion import Risk, ScanReport, SkippedFile, Suggestion, SuggestionType
from taskgate.analysis.unused_code import UnusedCodeDetector

__all__ = [
    "ComplexityScanner",
    "Risk",
    "ScanReport",
    "SkippedFile",
    "Suggestion",
    "SuggestionType",
    "UnusedCodeDetector",
]
