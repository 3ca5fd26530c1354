"""
Pharmacogenomics Service

Table-driven diplotype calling, phenotype classification and drug risk
evaluation over a versioned guideline dataset.
"""

from .models import (
    DetectedVariant,
    DrugRiskAssessment,
    GeneActivityRecord,
    Pathway,
    PatientProfile,
    PhenotypeCode,
    PhenotypeLabel,
    RiskCategory,
    Severity,
    VariantImpact,
)
from .guideline_loader import GuidelineDataset, get_guidelines, load_guidelines, reload_guidelines
from .diplotype_caller import DiplotypeCaller
from .phenotype_mapper import PhenotypeClassifier, normalize_phenotype
from .confidence import band_confidence, compute_gci, normalize_risk_label, severity_for
from .risk_engine import RiskEvaluator, create_risk_evaluator
from .profile import build_patient_profile

__all__ = [
    # Models
    'DetectedVariant',
    'DrugRiskAssessment',
    'GeneActivityRecord',
    'Pathway',
    'PatientProfile',
    'PhenotypeCode',
    'PhenotypeLabel',
    'RiskCategory',
    'Severity',
    'VariantImpact',
    # Guideline data
    'GuidelineDataset',
    'get_guidelines',
    'load_guidelines',
    'reload_guidelines',
    # Engine
    'DiplotypeCaller',
    'PhenotypeClassifier',
    'normalize_phenotype',
    'RiskEvaluator',
    'create_risk_evaluator',
    'build_patient_profile',
    # Confidence
    'band_confidence',
    'compute_gci',
    'normalize_risk_label',
    'severity_for',
]
