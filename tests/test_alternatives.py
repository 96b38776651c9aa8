"""
Tests for the alternative generator and its safety post-validation.
"""
import pytest

from medsafe.constants import Sources
from medsafe.exceptions import ParseError, UpstreamError
from medsafe.services.alternatives import (
    FALLBACK_WARNING, SAFE_EFFECTIVENESS, AlternativeGenerator, extract_json, parse_generator_output,
    recommends_discontinuation, rewrite_effectiveness,
)

from tests.fakes import FakeCompletionClient, generator_json, make_record


def alternative(name, effectiveness="Moderate", description="Supports general wellbeing."):
    return {
        "name": name,
        "description": description,
        "scientificEvidence": "Limited",
        "effectiveness": effectiveness,
    }


class TestParsing:

    def test_fenced_json(self):
        text = "Here you go:\n```json\n" + generator_json() + "\n```\nHope this helps"
        output = parse_generator_output(text)
        assert output.alternatives[0].name == "Omega-3 fatty acids"
        assert output.alternatives[0].evidence == "Moderate"
        assert output.confidence == 0.7

    def test_bare_json_with_prose(self):
        output = parse_generator_output("Sure! " + generator_json(confidence=0.4) + " Thanks.")
        assert output.confidence == 0.4

    def test_extra_fields_are_ignored(self):
        output = parse_generator_output(generator_json(model="gemini", notes=["x"]))
        assert not hasattr(output, "notes")

    @pytest.mark.parametrize("text", [
        "I cannot help with that.",
        "{not json}",
        generator_json(confidence=1.5),
        generator_json(schemaVersion="2"),
        generator_json(alternatives=[{"name": "Ginger"}]),
    ])
    def test_malformed_output_raises_parse_error(self, text):
        with pytest.raises(ParseError):
            parse_generator_output(text)

    def test_extract_json_rejects_arrays(self):
        with pytest.raises(ParseError):
            extract_json("[1, 2, 3]")


class TestSafetyRules:

    @pytest.mark.parametrize("label", ["High", "Highly effective", "Guaranteed results", "Cures anxiety", "100% effective"])
    def test_overclaims_are_rewritten(self, label):
        assert rewrite_effectiveness(label) == SAFE_EFFECTIVENESS

    def test_modest_labels_are_kept(self):
        assert rewrite_effectiveness("Moderate") == "Moderate"
        assert rewrite_effectiveness("Low to moderate") == "Low to moderate"

    @pytest.mark.parametrize("text", [
        "Stop taking your warfarin and use this instead.",
        "Can replace your prescription entirely.",
        "Discontinue sertraline once you start.",
        "Replacing warfarin with nattokinase may support circulation.",
        "Many people stop their statin and use red yeast rice, which can lower cholesterol.",
        "Switching off your antidepressant could help you feel more natural.",
    ])
    def test_discontinuation_is_detected(self, text):
        assert recommends_discontinuation(text)

    @pytest.mark.parametrize("text", [
        "Do not stop your medication without medical supervision.",
        "Never discontinue an anticoagulant on your own.",
        "Stopping sertraline suddenly can cause withdrawal symptoms.",
        "Abruptly discontinuing warfarin raises the risk of blood clots.",
        "Use alongside your prescribed treatment.",
    ])
    def test_safe_statements_are_not_flagged(self, text):
        assert not recommends_discontinuation(text)


class TestGenerator:

    @pytest.mark.anyio
    async def test_post_validation(self):
        client = FakeCompletionClient([generator_json(
            alternatives=[
                alternative("Ginger", effectiveness="Guaranteed"),
                alternative("Valerian", description="Replace your prescription with valerian."),
                alternative("Chamomile"),
                alternative("Lavender"),
                alternative("Magnesium"),
                alternative("Yoga"),
            ],
            warnings=["Stop taking your medication when you feel better", "May cause drowsiness"],
        )])
        generator = AlternativeGenerator(client, timeout=1)
        output = await generator.generate(make_record("Sertraline"), ["Warfarin"])

        names = [a.name for a in output.alternatives]
        assert names == ["Ginger", "Chamomile", "Lavender", "Magnesium"]
        assert output.alternatives[0].effectiveness == SAFE_EFFECTIVENESS
        assert output.warnings == ["May cause drowsiness"]
        assert not output.fallback
        assert "Warfarin" in client.prompts[0]

    @pytest.mark.anyio
    async def test_timeout_returns_fallback(self):
        client = FakeCompletionClient([generator_json()], delay=0.5)
        output = await AlternativeGenerator(client, timeout=0.01).generate(make_record("Warfarin"))
        assert output.fallback
        assert output.alternatives == []
        assert output.confidence == 0.0
        assert FALLBACK_WARNING in output.warnings

    @pytest.mark.anyio
    async def test_upstream_error_returns_fallback(self):
        client = FakeCompletionClient([UpstreamError(Sources.COMPLETION, "response blocked by safety filter")])
        output = await AlternativeGenerator(client).generate(make_record("Warfarin"))
        assert output.fallback

    @pytest.mark.anyio
    async def test_parse_error_returns_fallback(self):
        client = FakeCompletionClient(["Sorry, I can't do that."])
        output = await AlternativeGenerator(client).generate(make_record("Warfarin"))
        assert output.fallback

    @pytest.mark.anyio
    async def test_unexpected_error_returns_fallback(self):
        client = FakeCompletionClient([KeyError("candidates")])
        output = await AlternativeGenerator(client).generate(make_record("Warfarin"))
        assert output.fallback
