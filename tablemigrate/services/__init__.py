"""Service layer: type mapping, translation, data movement and reconciliation."""

from .type_mapping import map_type, mapping_hints
from .schema_checker import SchemaExistenceChecker
from .ddl_executor import DDLExecutor
from .llm_inference import TranslationOracle, LLMTranslationOracle, RuleBasedTranslationOracle
from .knowledge import (
    KnowledgeService,
    NullKnowledgeService,
    CortexSearchKnowledgeService,
    HTTPKnowledgeService,
)
from .translator import TranslationOrchestrator
from .data_mover import BatchDataMover
from .reconciliation import ReconciliationEngine
from .report_builder import ReportBuilder

__all__ = [
    "map_type",
    "mapping_hints",
    "SchemaExistenceChecker",
    "DDLExecutor",
    "TranslationOracle",
    "LLMTranslationOracle",
    "RuleBasedTranslationOracle",
    "KnowledgeService",
    "NullKnowledgeService",
    "CortexSearchKnowledgeService",
    "HTTPKnowledgeService",
    "TranslationOrchestrator",
    "BatchDataMover",
    "ReconciliationEngine",
    "ReportBuilder",
]
