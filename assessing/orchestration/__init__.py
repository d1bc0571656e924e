"""Batched recalculation, change-scoped recalculation and auditing."""

from assessing.orchestration.collaborators import AssessmentWriter
from assessing.orchestration.collaborators import DependencySelector
from assessing.orchestration.collaborators import InMemoryAssessmentWriter
from assessing.orchestration.collaborators import InMemoryPropertySource
from assessing.orchestration.collaborators import PropertySource
from assessing.orchestration.recalculation import RecalculationOrchestrator

__all__ = [
    'AssessmentWriter',
    'DependencySelector',
    'InMemoryAssessmentWriter',
    'InMemoryPropertySource',
    'PropertySource',
    'RecalculationOrchestrator',
]
