"""Tests for the generate-episode handler and LLM response parsing."""

import json

import pytest

from vidforge.errors import RecordNotFound
from vidforge.generate import GenerateHandler
from vidforge.generate.handler import build_script_prompt
from vidforge.jobs.models import GenerateEpisodePayload, JobType
from vidforge.llm import get_provider
from vidforge.llm.base import parse_json_response, structured_prompt
from vidforge.llm.anthropic_provider import AnthropicProvider
from vidforge.llm.openai_provider import OpenAIProvider
from vidforge.schemas.models import EpisodeScript, EpisodeStatus

SCRIPT = {
    "script_sections": [
        {"start_time": "0:00", "duration": 20, "content": "Hook", "visual": "Close-up", "voice_over": "Stop."},
        {"start_time": "0:20", "duration": 40, "content": "Tips", "visual": "Screen", "voice_over": "Do this."},
    ],
    "key_points": ["Archive aggressively"],
    "call_to_action": "Follow for more",
    "estimated_duration": 60,
    "speaking_notes": ["pause after hook"],
}


class MockLLM:
    def __init__(self, fail=False):
        self.fail = fail
        self.prompts = []

    def complete(self, prompt, **kwargs):
        return json.dumps(SCRIPT)

    def complete_structured(self, prompt, schema, **kwargs):
        self.prompts.append(prompt)
        if self.fail:
            raise RuntimeError("model overloaded")
        return parse_json_response(self.complete(prompt), schema)


def _payload():
    return GenerateEpisodePayload(episode_id="e1")


def test_generate_persists_script(content, make_ctx, log_sink):
    llm = MockLLM()
    GenerateHandler(content, llm)(_payload(), make_ctx(_payload(), JobType.GENERATE_EPISODE))

    episode = content.get_episode("e1")
    assert episode.status == EpisodeStatus.GENERATED
    assert len(episode.script.script_sections) == 2
    assert episode.script.call_to_action == "Follow for more"
    assert "Inbox Zero" in llm.prompts[0]
    assert log_sink.progress_values()[0] == 0
    assert log_sink.progress_values()[-1] == 100


def test_missing_episode_is_permanent(content, make_ctx):
    payload = GenerateEpisodePayload(episode_id="nope")
    with pytest.raises(RecordNotFound):
        GenerateHandler(content, MockLLM())(payload, make_ctx(payload, JobType.GENERATE_EPISODE))


def test_llm_failure_resets_to_draft(content, make_ctx):
    with pytest.raises(RuntimeError, match="overloaded"):
        GenerateHandler(content, MockLLM(fail=True))(_payload(), make_ctx(_payload(), JobType.GENERATE_EPISODE))
    episode = content.get_episode("e1")
    assert episode.status == EpisodeStatus.DRAFT
    assert episode.script is None


def test_prompt_falls_back_to_series_topic(content):
    episode = content.get_episode("e1").model_copy(update={"topic": ""})
    prompt = build_script_prompt(episode, content.get_series("s1"))
    assert "Topic: productivity" in prompt
    assert "Target Duration: 60 seconds" in prompt


class TestParseJsonResponse:
    def test_plain_json(self):
        script = parse_json_response(json.dumps(SCRIPT), EpisodeScript)
        assert script.key_points == ["Archive aggressively"]

    def test_code_fence_stripped(self):
        raw = "```json\n" + json.dumps(SCRIPT) + "\n```"
        assert parse_json_response(raw, EpisodeScript).estimated_duration == 60

    def test_invalid_json_raises(self):
        with pytest.raises(json.JSONDecodeError):
            parse_json_response("not json {", EpisodeScript)


def test_structured_prompt_includes_schema():
    prompt = structured_prompt("Write a script", EpisodeScript)
    assert prompt.startswith("Write a script")
    assert "script_sections" in prompt
    assert "raw JSON" in prompt


def test_get_provider_by_name():
    assert isinstance(get_provider("openai", api_key="sk-test"), OpenAIProvider)
    assert isinstance(get_provider("Anthropic", api_key="sk-ant-test"), AnthropicProvider)
