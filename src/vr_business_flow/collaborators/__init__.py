"""Collaborator contracts, payload models and the bounded-call guard."""

from vr_business_flow.collaborators.interfaces import (
    AssessmentService,
    Collaborators,
    IntakeService,
    InterviewService,
    KnowledgeBaseService,
    PartnerService,
    ProgressMonitoringService,
    WorkspaceService,
)

__all__ = [
    "AssessmentService",
    "Collaborators",
    "IntakeService",
    "InterviewService",
    "KnowledgeBaseService",
    "PartnerService",
    "ProgressMonitoringService",
    "WorkspaceService",
]
