from typing import Optional

from pharmatwin.services.pharmacogenomics.models import DrugRiskAssessment
from pharmatwin.services.pk.simulator import PKSummary

EXPLANATION_KEYS = ("patient_friendly", "clinician_technical", "action_required", "twin_analysis")


def build_prompt(
    assessment: DrugRiskAssessment,
    pk_summary: Optional[PKSummary] = None,
    clearance_label: Optional[str] = None,
) -> str:
    """
    Constructs the prompt asking the LLM for the four-part explanation.

    Args:
        assessment: The drug risk assessment to explain.
        pk_summary: Simulated exposure of the digital twin, when available.
        clearance_label: Twin clearance label (e.g. "Low Clearance").

    Returns:
        A formatted prompt string.
    """
    activity = assessment.activity_score if assessment.activity_score is not None else "N/A"

    twin_lines = ""
    if pk_summary is not None:
        twin_lines = (
            f"- Simulated Cmax: {pk_summary.cmax:.4f} at {pk_summary.tmax_hours:.2f} h\n"
            f"- Simulated AUC: {pk_summary.auc:.4f}\n"
            f"- Twin Clearance: {clearance_label or 'N/A'}\n"
        )

    return f"""
You are an expert clinical pharmacogenomics AI.
Provide a two-part explanation for the drug {assessment.drug} based on the patient's genetic profile.

Profile Data:
- Gene: {assessment.gene}
- Diplotype: {assessment.diplotype}
- Phenotype: {assessment.phenotype.value}
- Activity Score: {activity}
- Mechanism: {assessment.mechanism}
- Risk Level: {assessment.risk.value}
- Recommendation: {assessment.recommendation}
- Evidence Citation: {assessment.evidence_strength}
{twin_lines}
Ensure the terminology is strictly neutral and clinical. Do NOT use terms like 'fast metabolizer', 'better detox', 'strong metabolism'. Instead, use 'expected clearance', 'normal metabolizer', 'standard enzyme activity'.
Do NOT include any non-evidence-based lifestyle advice. Advice must remain medication-focused only.

You must return ONLY a strict JSON object with exactly four keys: "patient_friendly", "clinician_technical", "action_required", and "twin_analysis". All values MUST be plain strings.
- "patient_friendly": Plain language explanation of what this means for the patient, with medication-focused tips.
- "clinician_technical": Explanation including CPIC alignment, diplotype references and the exact mechanism {assessment.mechanism}.
- "action_required": A concise, patient-facing actionable instruction.
- "twin_analysis": A 3-4 sentence pharmacokinetic analysis of how the phenotype alters AUC, Cmax and half-life, naming the clearance mechanism.

Ensure valid JSON, without markdown blocks.
"""
