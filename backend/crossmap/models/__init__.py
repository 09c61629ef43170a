from .base import Base
from .catalog import (
    Framework,
    Control,
    Requirement,
    RequirementControlMapping,
    TrustworthyRequirement,
)
from .cross_reference import (
    CrossReference,
    CrossReferenceAdjustment,
    RelationshipKind,
    Provenance,
)
from .tenant import TenantModuleConfig, TenantControlExclusion
from .inspection import InspectionReport, Finding, FindingControlLink
from .saved_query import SavedQuery, QueryType

__all__ = [
    "Base",
    "Framework", "Control", "Requirement", "RequirementControlMapping",
    "TrustworthyRequirement",
    "CrossReference", "CrossReferenceAdjustment", "RelationshipKind", "Provenance",
    "TenantModuleConfig", "TenantControlExclusion",
    "InspectionReport", "Finding", "FindingControlLink",
    "SavedQuery", "QueryType",
]
