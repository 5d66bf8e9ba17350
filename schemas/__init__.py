"""
Pydantic schemas for the job collection service.

Contract-first design: these schemas define the data contracts
between adapters, the pipeline stages, and the stores.
"""

from .base import Severity
from .job import (
    ApplicationDetails,
    CanonicalJob,
    CollectingMetadata,
    CompanyInfo,
    JobLocation,
    LanguageRequirement,
    Requirement,
    TaxonomyRef,
)
from .validation import ValidationIssue, ValidationResult
from .result import CollectionResult, CollectionStatus, ErrorDetails
from .changes import ChangeDetectionResult, ChangeStatus, Impact, StructuralChange
from .config import (
    ApiSourceConfig,
    RetryPolicy,
    ScheduleConfig,
    ScoringPolicy,
    ScraperSourceConfig,
    SourceConfig,
    SourceKind,
    SourcesFile,
)

__all__ = [
    "Severity",
    # Job records
    "CanonicalJob",
    "CompanyInfo",
    "JobLocation",
    "ApplicationDetails",
    "TaxonomyRef",
    "Requirement",
    "LanguageRequirement",
    "CollectingMetadata",
    # Pipeline outcomes
    "ValidationIssue",
    "ValidationResult",
    "CollectionResult",
    "CollectionStatus",
    "ErrorDetails",
    "ChangeDetectionResult",
    "ChangeStatus",
    "Impact",
    "StructuralChange",
    # Config schemas
    "SourceKind",
    "SourceConfig",
    "ApiSourceConfig",
    "ScraperSourceConfig",
    "ScheduleConfig",
    "RetryPolicy",
    "ScoringPolicy",
    "SourcesFile",
]
