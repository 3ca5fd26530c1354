import json
import logging
import re
from typing import Any, Optional

from pydantic import BaseModel

from pharmatwin.core.config import ExplanationConfig, get_explanation_config
from pharmatwin.services.llm.groq_client import GroqClient
from pharmatwin.services.llm.prompt_builder import build_prompt
from pharmatwin.services.pharmacogenomics.models import DrugRiskAssessment, RiskCategory
from pharmatwin.services.pk.simulator import PKSummary

logger = logging.getLogger(__name__)

DISABLED_MESSAGE = "AI Explanation disabled: Missing GROQ API Key."
NOT_REQUESTED_MESSAGE = "AI Explanation not requested."


class Explanation(BaseModel):
    patient_friendly: str
    clinician_technical: str
    action_required: Optional[str] = None
    twin_analysis: Optional[str] = None


def twin_fallback(assessment: DrugRiskAssessment, window_hours: Optional[float]) -> str:
    if assessment.risk is RiskCategory.TOXIC:
        outlook = "may exceed the toxicity threshold."
    elif assessment.risk is RiskCategory.SAFE:
        outlook = "remains within the therapeutic window."
    else:
        outlook = "may require monitoring and adjustment."
    window = f"{window_hours:g}h" if window_hours else "the simulated window"
    return (
        f"This simulation models {assessment.drug} plasma concentration over {window} "
        f"based on your {assessment.phenotype.value} phenotype. Standard dosing {outlook}"
    )


def disabled_explanation() -> Explanation:
    return Explanation(patient_friendly=DISABLED_MESSAGE, clinician_technical=DISABLED_MESSAGE)


def not_requested_explanation() -> Explanation:
    return Explanation(patient_friendly=NOT_REQUESTED_MESSAGE, clinician_technical=NOT_REQUESTED_MESSAGE)


def error_explanation() -> Explanation:
    return Explanation(
        patient_friendly="Error generating explanation. Please consult your physician.",
        clinician_technical="Error communicating with LLM service for technical rationale.",
        action_required="Consult your clinician.",
        twin_analysis="Simulation data unavailable due to server error.",
    )


def apply_clinical_safety(text: str) -> str:
    """
    Replaces prescriptive language with cautious phrasing and makes sure
    the text is grounded in CPIC guidance.
    """
    replacements = {
        r"\bmust\b": "may",
        r"\bshould\b": "may be considered",
        r"\bwill cause\b": "is associated with",
        r"\bcauses\b": "is associated with",
        r"\bdefinitely\b": "likely",
    }

    safe_text = text.strip()
    for pattern, replacement in replacements.items():
        safe_text = re.sub(pattern, replacement, safe_text, flags=re.IGNORECASE)

    if "CPIC" not in safe_text:
        if safe_text.endswith("."):
            safe_text = safe_text[:-1] + ", based on CPIC pharmacogenomic guidance."
        else:
            safe_text += " This assessment is based on CPIC pharmacogenomic guidance."
    return safe_text


def _as_text(value: Any) -> Optional[str]:
    """Flatten values the model returned as objects or arrays."""
    if value is None:
        return None
    if isinstance(value, dict):
        return " ".join(str(v) for v in value.values())
    if isinstance(value, (list, tuple)):
        return " ".join(str(v) for v in value)
    return str(value)


def parse_explanation(raw: str) -> Optional[Explanation]:
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("LLM returned non-JSON content")
        return None
    if not isinstance(data, dict):
        logger.warning("LLM returned JSON that is not an object")
        return None

    patient = _as_text(data.get("patient_friendly"))
    clinician = _as_text(data.get("clinician_technical"))
    if not patient or not clinician:
        logger.warning("LLM response missing explanation keys")
        return None

    return Explanation(
        patient_friendly=apply_clinical_safety(patient),
        clinician_technical=apply_clinical_safety(clinician),
        action_required=_as_text(data.get("action_required")),
        twin_analysis=_as_text(data.get("twin_analysis")),
    )


class ExplanationService:
    """Generates the free-text explanation for one drug assessment."""

    def __init__(self, client: Optional[GroqClient] = None, config: Optional[ExplanationConfig] = None):
        self.client = client or GroqClient()
        self.config = config or get_explanation_config()

    @property
    def enabled(self) -> bool:
        return self.config.enabled and self.client.configured

    async def explain(
        self,
        assessment: DrugRiskAssessment,
        pk_summary: Optional[PKSummary] = None,
        clearance_label: Optional[str] = None,
    ) -> Explanation:
        if not self.enabled:
            return disabled_explanation()

        logger.info("Generating clinical explanation for %s", assessment.drug)
        prompt = build_prompt(assessment, pk_summary, clearance_label)
        raw = await self.client.generate_json(
            prompt,
            max_tokens=self.config.max_tokens,
            temperature=self.config.temperature,
        )
        if raw is None:
            logger.warning("LLM fallback triggered: no response for %s", assessment.drug)
            return error_explanation()

        explanation = parse_explanation(raw)
        if explanation is None:
            return error_explanation()

        if assessment.gene.upper() not in explanation.clinician_technical.upper():
            logger.warning("Gene %s not found verbatim in LLM explanation", assessment.gene)
        return explanation
