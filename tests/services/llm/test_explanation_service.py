"""
Tests for the explanation service and the Groq client.
The HTTP layer is replaced by httpx.MockTransport; no network access.
"""

import asyncio
import json

import httpx
import pytest

from pharmatwin.core.config import ExplanationConfig
from pharmatwin.services.llm.explanation_service import (
    DISABLED_MESSAGE,
    ExplanationService,
    apply_clinical_safety,
    error_explanation,
    parse_explanation,
    twin_fallback,
)
from pharmatwin.services.llm.groq_client import GroqClient
from pharmatwin.services.llm.prompt_builder import EXPLANATION_KEYS, build_prompt
from pharmatwin.services.pharmacogenomics.models import (
    DrugRiskAssessment,
    Pathway,
    PhenotypeLabel,
    RiskCategory,
)
from pharmatwin.services.pk.simulator import PKSummary


class StubClient(GroqClient):
    """GroqClient that returns a canned completion."""

    def __init__(self, reply):
        super().__init__(api_key="test-key")
        self.reply = reply
        self.prompts = []

    async def generate_json(self, prompt, max_tokens=600, temperature=0.1):
        self.prompts.append(prompt)
        return self.reply


@pytest.fixture
def assessment():
    return DrugRiskAssessment(
        drug="CLOPIDOGREL",
        gene="CYP2C19",
        diplotype="*2/*2",
        phenotype=PhenotypeLabel.POOR_METABOLIZER,
        mechanism="CYP2C19_activation",
        pathway=Pathway.ACTIVATION,
        risk=RiskCategory.ADJUST_DOSAGE,
        recommendation="Avoid clopidogrel; use prasugrel or ticagrelor if not contraindicated.",
        evidence_strength="CPIC Level A",
        confidence=0.17,
    )


@pytest.fixture
def config():
    return ExplanationConfig(timeout_seconds=1.0)


def completion(**fields):
    return json.dumps(fields)


class TestClinicalSafety:
    """Test prescriptive-language rewriting."""

    def test_replaces_prescriptive_terms(self):
        text = apply_clinical_safety("You must stop. This causes harm and should be avoided per CPIC.")

        assert "must" not in text
        assert "causes" not in text
        assert "may be considered" in text

    def test_appends_cpic_grounding(self):
        assert apply_clinical_safety("Standard dosing applies.").endswith(
            "based on CPIC pharmacogenomic guidance."
        )
        assert apply_clinical_safety("No period").endswith("This assessment is based on CPIC pharmacogenomic guidance.")

    def test_existing_cpic_reference_kept(self):
        assert apply_clinical_safety("Per CPIC, use standard dosing.") == "Per CPIC, use standard dosing."


class TestParseExplanation:
    """Test parsing of the model's JSON reply."""

    def test_all_keys(self):
        raw = completion(
            patient_friendly="Your body converts this medicine slowly.",
            clinician_technical="CYP2C19 *2/*2 poor metabolizer per CPIC.",
            action_required="Talk to your doctor.",
            twin_analysis="Lower active metabolite AUC.",
        )

        explanation = parse_explanation(raw)

        assert explanation.action_required == "Talk to your doctor."
        assert explanation.twin_analysis == "Lower active metabolite AUC."
        assert "CPIC" in explanation.patient_friendly

    def test_nested_values_flattened(self):
        raw = completion(
            patient_friendly={"a": "Slow", "b": "conversion."},
            clinician_technical=["CYP2C19", "PM per CPIC."],
        )

        explanation = parse_explanation(raw)

        assert explanation.patient_friendly.startswith("Slow conversion")
        assert explanation.clinician_technical == "CYP2C19 PM per CPIC."

    @pytest.mark.parametrize("raw", ["not json", "[1, 2]", completion(patient_friendly="only one")])
    def test_unusable_replies(self, raw):
        assert parse_explanation(raw) is None


class TestExplanationService:
    """Test explanation generation with stubbed clients."""

    def test_explain(self, assessment, config):
        client = StubClient(completion(
            patient_friendly="This medicine must be changed.",
            clinician_technical="CYP2C19 *2/*2 reduces activation.",
            action_required="Ask about prasugrel.",
            twin_analysis="Active metabolite exposure is reduced.",
        ))
        service = ExplanationService(client, config)
        summary = PKSummary(cmax=0.1, tmax_hours=1.5, auc=0.4, exceeds_toxicity=False, below_efficacy=False)

        explanation = asyncio.run(service.explain(assessment, summary, "Low Clearance"))

        assert "must" not in explanation.patient_friendly
        assert explanation.action_required == "Ask about prasugrel."
        assert "Low Clearance" in client.prompts[0]

    def test_disabled_without_key(self, assessment, config, monkeypatch):
        monkeypatch.delenv("GROQ_API_KEY", raising=False)
        service = ExplanationService(GroqClient(api_key=""), config)

        explanation = asyncio.run(service.explain(assessment))

        assert not service.enabled
        assert explanation.patient_friendly == DISABLED_MESSAGE

    def test_disabled_by_config(self, assessment):
        service = ExplanationService(StubClient("{}"), ExplanationConfig(enabled=False))

        explanation = asyncio.run(service.explain(assessment))

        assert explanation.patient_friendly == DISABLED_MESSAGE

    @pytest.mark.parametrize("reply", [None, "garbage"])
    def test_fallback_on_failure(self, assessment, config, reply):
        service = ExplanationService(StubClient(reply), config)

        explanation = asyncio.run(service.explain(assessment))

        assert explanation == error_explanation()

    def test_twin_fallback_text(self, assessment):
        text = twin_fallback(assessment, 72.0)

        assert "CLOPIDOGREL" in text
        assert "72h" in text
        assert "monitoring" in text


class TestPromptBuilder:
    """Test the explanation prompt."""

    def test_prompt_contents(self, assessment):
        prompt = build_prompt(assessment)

        assert "CYP2C19" in prompt
        assert "*2/*2" in prompt
        assert "N/A" in prompt
        for key in EXPLANATION_KEYS:
            assert key in prompt


class TestGroqClient:
    """Test the HTTP client against a mock transport."""

    def test_success(self):
        calls = []

        def handler(request):
            calls.append(json.loads(request.content))
            return httpx.Response(200, json={"choices": [{"message": {"content": '{"ok": true}'}}]})

        client = GroqClient(api_key="k", transport=httpx.MockTransport(handler))

        result = asyncio.run(client.generate_json("hello", max_tokens=50))

        assert result == '{"ok": true}'
        assert calls[0]["max_tokens"] == 50
        assert calls[0]["response_format"] == {"type": "json_object"}

    def test_client_error_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(401, json={"error": "bad key"})

        client = GroqClient(api_key="k", transport=httpx.MockTransport(handler))

        assert asyncio.run(client.generate_json("hello")) is None
        assert len(calls) == 1

    def test_server_error_retried_then_gives_up(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503)

        client = GroqClient(api_key="k", transport=httpx.MockTransport(handler))

        assert asyncio.run(client.generate_json("hello")) is None
        assert len(calls) == 2

    def test_unexpected_shape(self):
        client = GroqClient(
            api_key="k",
            transport=httpx.MockTransport(lambda request: httpx.Response(200, json={"choices": []})),
        )

        assert asyncio.run(client.generate_json("hello")) is None

    def test_not_configured(self, monkeypatch):
        monkeypatch.delenv("GROQ_API_KEY", raising=False)

        assert not GroqClient(api_key="").configured
