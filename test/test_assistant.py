"""
Тесты коллаборатора-ассистента (OpenAI мокается).
"""
import json

import pytest
from unittest.mock import AsyncMock, MagicMock

from app.core.config import Settings
from app.core.errors import UpstreamError
from app.services.assistant import (
    DisabledAssistant,
    OpenAIAssistant,
    build_assistant_factory,
    parse_reply,
)

from conftest import CREDENTIAL


def _completion(content: str):
    response = MagicMock()
    response.choices = [MagicMock()]
    response.choices[0].message.content = content
    return response


@pytest.fixture
def openai_client():
    client = MagicMock()
    client.chat.completions.create = AsyncMock()
    return client


class TestParseReply:

    def test_json_reply_keeps_renderer_keys(self):
        raw = json.dumps({
            "content": "Two meetings",
            "events": [{"summary": "Standup"}],
            "travelTimes": {"driving": "10 min"},
            "secret_debug": "drop me",
        })

        result = parse_reply(raw)

        assert result["content"] == "Two meetings"
        assert result["events"] == [{"summary": "Standup"}]
        assert result["travelTimes"] == {"driving": "10 min"}
        assert result["type"] == "text"
        assert "secret_debug" not in result

    def test_markdown_fenced_json(self):
        result = parse_reply('```json\n{"content": "ok", "type": "tasks", "tasks": []}\n```')
        assert result == {"content": "ok", "type": "tasks", "tasks": []}

    def test_plain_text_fallback(self):
        assert parse_reply("Sure, here you go") == {"type": "text", "content": "Sure, here you go"}

    def test_non_object_json_fallback(self):
        assert parse_reply("[1, 2]") == {"type": "text", "content": "[1, 2]"}


class TestOpenAIAssistant:

    @pytest.mark.asyncio
    async def test_process_query_builds_messages(self, openai_client):
        openai_client.chat.completions.create.return_value = _completion('{"content": "Leave at 8:40"}')
        assistant = OpenAIAssistant(CREDENTIAL, client=openai_client, model="gpt-test")
        history = [
            {"role": "user", "content": "Where is my meeting?"},
            {"role": "assistant", "content": "At the office"},
            {"role": "assistant", "content": None},
        ]

        result = await assistant.process_query(
            "When should I leave?", "Berlin", history,
            {"lastEvents": [{"summary": "Standup"}], "sessionId": "s1", "conversationCount": 3},
            {"tone": "formal"},
        )

        assert result == {"content": "Leave at 8:40", "type": "text"}
        kwargs = openai_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-test"
        messages = kwargs["messages"]
        assert messages[0]["role"] == "system"
        assert "Berlin" in messages[0]["content"]
        assert '"tone": "formal"' in messages[0]["content"]
        assert "Standup" in messages[0]["content"]
        assert "conversationCount" not in messages[0]["content"]
        assert messages[1:] == [
            {"role": "user", "content": "Where is my meeting?"},
            {"role": "assistant", "content": "At the office"},
            {"role": "user", "content": "When should I leave?"},
        ]

    @pytest.mark.asyncio
    async def test_api_error_is_upstream_error(self, openai_client):
        openai_client.chat.completions.create.side_effect = RuntimeError("rate limited")
        assistant = OpenAIAssistant(CREDENTIAL, client=openai_client, model="gpt-test")

        with pytest.raises(UpstreamError, match="rate limited"):
            await assistant.process_query("hi", None, [], None, {})

    @pytest.mark.asyncio
    async def test_travel_query_passes_location(self, openai_client):
        openai_client.chat.completions.create.return_value = _completion('{"content": "25 min"}')
        assistant = OpenAIAssistant(CREDENTIAL, client=openai_client, model="gpt-test")

        result = await assistant.handle_travel_query("travel time from Home to Airport", "Home")

        assert result["content"] == "25 min"
        system_prompt = openai_client.chat.completions.create.call_args.kwargs["messages"][0]["content"]
        assert "Current location: Home" in system_prompt

    @pytest.mark.asyncio
    async def test_schedule_query_mentions_date(self, openai_client):
        openai_client.chat.completions.create.return_value = _completion('{"content": "Free day"}')
        assistant = OpenAIAssistant(CREDENTIAL, client=openai_client, model="gpt-test")

        await assistant.handle_schedule_query("get schedule", "2026-10-20")

        messages = openai_client.chat.completions.create.call_args.kwargs["messages"]
        assert messages[-1]["content"] == "get schedule (date: 2026-10-20)"


class TestDisabledAssistant:

    @pytest.mark.asyncio
    async def test_all_calls_fail_with_upstream_error(self):
        assistant = DisabledAssistant(CREDENTIAL)
        with pytest.raises(UpstreamError, match="OPENAI_API_KEY"):
            await assistant.process_query("hi", None, [], None, {})
        with pytest.raises(UpstreamError):
            await assistant.handle_schedule_query("get schedule")
        with pytest.raises(UpstreamError):
            await assistant.handle_travel_query("travel time")


class TestFactory:

    def test_without_key_returns_disabled(self):
        factory = build_assistant_factory(Settings(_env_file=None, openai_api_key=None))
        assert isinstance(factory(CREDENTIAL), DisabledAssistant)

    def test_with_key_returns_openai(self):
        settings = Settings(_env_file=None, openai_api_key="sk-test", gpt_model_fast="gpt-test")
        assistant = build_assistant_factory(settings)(CREDENTIAL)

        assert isinstance(assistant, OpenAIAssistant)
        assert assistant.model == "gpt-test"
        assert assistant.credential == CREDENTIAL
