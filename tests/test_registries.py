"""
Tests for registry response parsing. HTTP is replaced by canned payloads.
"""
import pytest

from medsafe.constants import Sources
from medsafe.exceptions import UpstreamError
from medsafe.services.completion import GeminiCompletionClient
from medsafe.services.registries import (
    OpenFDAEventsRegistry, OpenFDALabelRegistry, RxNormRegistry, extract_label_interaction,
)

from tests.fakes import make_record

WARFARIN_LABEL = {
    "openfda": {
        "brand_name": ["COUMADIN"],
        "generic_name": ["WARFARIN SODIUM"],
        "substance_name": ["WARFARIN SODIUM"],
        "pharm_class_epc": ["Vitamin K Antagonist [EPC]"],
        "rxcui": ["855332"],
        "application_number": ["NDA009218"],
    },
    "pregnancy": ["Pregnancy Category X. Warfarin is contraindicated in pregnant women."],
    "drug_interactions": [
        "Concomitant use of NSAIDs such as ibuprofen can increase the risk of serious bleeding. "
        "Monitor INR closely when starting amiodarone."
    ],
}


def canned(responses):
    """Replacement for RegistryClient._get_json keyed by path."""
    calls = []

    async def get_json(path, params=None):
        calls.append((path, params))
        response = responses.get(path)
        if isinstance(response, Exception):
            raise response
        return response

    get_json.calls = calls
    return get_json


class TestOpenFDALabel:

    @pytest.mark.anyio
    async def test_lookup_parses_label(self):
        registry = OpenFDALabelRegistry("https://api.fda.gov/drug")
        registry._get_json = canned({"label.json": {"results": [WARFARIN_LABEL]}})
        match = await registry.lookup("Coumadin")

        assert match.source == Sources.OPENFDA_LABEL
        assert match.generic_name == "warfarin sodium"
        assert match.brand_names == ("Coumadin",)
        assert match.pharm_classes == ("Vitamin K Antagonist [EPC]",)
        assert match.normalized_id == "855332"
        assert match.fda_approved
        assert match.pregnancy_category == "X"

    @pytest.mark.anyio
    async def test_no_results_is_a_miss(self):
        registry = OpenFDALabelRegistry("https://api.fda.gov/drug")
        registry._get_json = canned({"label.json": None})
        assert await registry.lookup("Zyxoprine") is None

    @pytest.mark.anyio
    async def test_label_text_is_cached(self):
        registry = OpenFDALabelRegistry("https://api.fda.gov/drug")
        registry._get_json = canned({"label.json": {"results": [WARFARIN_LABEL]}})
        await registry.lookup("Coumadin")
        text = await registry.label_text("coumadin")
        assert "ibuprofen" in text
        assert len(registry._get_json.calls) == 1

    @pytest.mark.anyio
    async def test_interaction_mention(self):
        registry = OpenFDALabelRegistry("https://api.fda.gov/drug")
        registry._get_json = canned({"label.json": {"results": [WARFARIN_LABEL]}})
        mention = await registry.interaction_mention(make_record("Warfarin"), make_record("Ibuprofen"))
        assert mention.severity == "serious"
        assert mention.confidence == 0.5
        assert "ibuprofen" in mention.description

    @pytest.mark.anyio
    async def test_upstream_errors_propagate(self):
        registry = OpenFDALabelRegistry("https://api.fda.gov/drug")
        registry._get_json = canned({"label.json": UpstreamError(Sources.OPENFDA_LABEL, "HTTP 500")})
        with pytest.raises(UpstreamError):
            await registry.lookup("Coumadin")


def test_extract_label_interaction_tiers():
    text = "take with food. do not use with nitrates. monitor potassium when used with spironolactone."
    assert extract_label_interaction(text, ["nitroglycerin", "nitrates"])[0] == "contraindicated"
    assert extract_label_interaction(text, ["spironolactone"])[0] == "caution"
    assert extract_label_interaction("may be used with food.", ["food"])[0] == "mentioned"
    assert extract_label_interaction(text, ["metformin"]) is None
    # short terms are ignored to avoid false positives
    assert extract_label_interaction(text, ["use"]) is None


class TestOpenFDAEvents:

    @pytest.mark.anyio
    async def test_enough_reports_is_an_interaction(self):
        registry = OpenFDAEventsRegistry("https://api.fda.gov/drug", min_reports=3)
        registry._get_json = canned({"event.json": {
            "meta": {"results": {"total": 42}},
            "results": [{"serious": "1"}, {"serious": "2"}],
        }})
        interaction = await registry.interaction_reports(make_record("Warfarin"), make_record("Aspirin"))
        assert interaction.severity == "serious"
        assert "42 adverse event reports" in interaction.description

    @pytest.mark.anyio
    async def test_too_few_reports_is_a_miss(self):
        registry = OpenFDAEventsRegistry("https://api.fda.gov/drug", min_reports=3)
        registry._get_json = canned({"event.json": {"meta": {"results": {"total": 2}}, "results": [{"serious": "1"}]}})
        assert await registry.interaction_reports(make_record("Warfarin"), make_record("Aspirin")) is None


class TestRxNorm:

    @pytest.mark.anyio
    async def test_lookup_collects_classes(self):
        registry = RxNormRegistry("https://rxnav.nlm.nih.gov/REST")
        registry._get_json = canned({
            "rxcui.json": {"idGroup": {"rxnormId": ["36437"]}},
            "rxclass/class/byRxcui.json": {"rxclassDrugInfoList": {"rxclassDrugInfo": [
                {"rxclassMinConceptItem": {"className": "Serotonin Reuptake Inhibitor", "classType": "EPC"}},
                {"rxclassMinConceptItem": {"className": "Serotonin Reuptake Inhibitor", "classType": "EPC"}},
                {"rxclassMinConceptItem": {"className": "Depression", "classType": "DISEASE"}},
            ]}},
        })
        match = await registry.lookup("sertraline")
        assert match.normalized_id == "36437"
        assert match.pharm_classes == ("Serotonin Reuptake Inhibitor",)
        assert match.fda_approved

    @pytest.mark.anyio
    async def test_unknown_name_is_a_miss(self):
        registry = RxNormRegistry("https://rxnav.nlm.nih.gov/REST")
        registry._get_json = canned({"rxcui.json": {"idGroup": {}}})
        assert await registry.lookup("zyxoprine") is None

    @pytest.mark.anyio
    async def test_interaction_prefers_real_severity(self):
        registry = RxNormRegistry("https://rxnav.nlm.nih.gov/REST")
        registry._get_json = canned({"interaction/list.json": {"fullInteractionTypeGroup": [{
            "fullInteractionType": [{"interactionPair": [
                {"severity": "N/A", "description": "Generic note."},
                {"severity": "high", "description": "Increased risk of bleeding."},
            ]}],
        }]}})
        interaction = await registry.interaction_between(
            make_record("Warfarin", normalized_id="11289"), make_record("Aspirin", normalized_id="1191"),
        )
        assert interaction.severity == "high"
        assert interaction.description == "Increased risk of bleeding."
        assert registry._get_json.calls[0][1] == {"rxcuis": "11289 1191"}


class TestGeminiResponse:

    def test_extracts_text(self):
        data = {"candidates": [{"content": {"parts": [{"text": "{\"a\": "}, {"text": "1}"}]}, "finishReason": "STOP"}]}
        assert GeminiCompletionClient.extract_text(data) == "{\"a\": 1}"

    @pytest.mark.parametrize("data", [
        {"promptFeedback": {"blockReason": "SAFETY"}},
        {"candidates": [{"finishReason": "SAFETY", "content": {"parts": [{"text": "x"}]}}]},
        {"candidates": []},
        {"candidates": [{"content": {"parts": [{"text": "   "}]}}]},
    ])
    def test_blocked_or_empty_raises(self, data):
        with pytest.raises(UpstreamError):
            GeminiCompletionClient.extract_text(data)
