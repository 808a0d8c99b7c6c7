"""Tests for dialdesk.message: normalization of client chat history"""

import pytest

from dialdesk.errors import NoValidMessages
from dialdesk.message import Message, MessageRole, latest_user_message, normalize_messages


class TestNormalizeMessages:

    def test_keeps_valid_messages_in_order(self):
        raw = [
            {"role": "user", "content": "hi", "id": "1"},
            {"role": "assistant", "content": "hello", "id": "2"},
            {"role": "user", "content": "my bill is too high", "id": "3"},
        ]
        result = normalize_messages(raw)
        assert [m.id for m in result] == ["1", "2", "3"]
        assert result[1].role == MessageRole.ASSISTANT

    def test_drops_malformed_entries(self):
        raw = [
            "not a dict",
            {"role": "user"},
            {"role": "user", "content": 42},
            None,
            {"role": "user", "content": "real question"},
        ]
        result = normalize_messages(raw)
        assert len(result) == 1
        assert result[0].content == "real question"

    def test_output_never_longer_than_input(self):
        raw = [{"role": "user", "content": "a"}, {"content": "b"}, 3]
        assert len(normalize_messages(raw)) <= len(raw)

    def test_unknown_role_becomes_user(self):
        result = normalize_messages([{"role": "wizard", "content": "help"}])
        assert result[0].role == MessageRole.USER

    def test_role_is_lowercased(self):
        result = normalize_messages([
            {"role": "USER", "content": "hi"},
            {"role": "Assistant", "content": "hey"},
        ])
        assert [m.role for m in result] == [MessageRole.USER, MessageRole.ASSISTANT]

    def test_missing_id_is_generated(self):
        result = normalize_messages([{"role": "user", "content": "hi"}])
        assert result[0].id

    def test_idempotent(self):
        once = normalize_messages([
            {"role": "user", "content": "hi"},
            {"role": "bogus", "content": "x"},
            {"content": "no role"},
        ])
        twice = normalize_messages(once)
        assert twice == once

    def test_accepts_message_instances(self):
        msg = Message.create(MessageRole.USER, "hello")
        assert normalize_messages([msg]) == [msg]


class TestNoValidMessages:

    def test_empty_list(self):
        with pytest.raises(NoValidMessages):
            normalize_messages([])

    def test_none(self):
        with pytest.raises(NoValidMessages):
            normalize_messages(None)

    def test_string_is_not_a_list(self):
        with pytest.raises(NoValidMessages):
            normalize_messages("hello")

    def test_only_assistant_messages(self):
        with pytest.raises(NoValidMessages):
            normalize_messages([{"role": "assistant", "content": "hi"}])

    def test_whitespace_user_content(self):
        with pytest.raises(NoValidMessages):
            normalize_messages([{"role": "user", "content": "   \n"}])

    def test_all_malformed(self):
        with pytest.raises(NoValidMessages):
            normalize_messages([1, "two", {"role": "user"}])


class TestLatestUserMessage:

    def test_returns_most_recent_user_message(self):
        messages = normalize_messages([
            {"role": "user", "content": "first"},
            {"role": "assistant", "content": "reply"},
            {"role": "user", "content": "second"},
            {"role": "assistant", "content": "reply 2"},
        ])
        assert latest_user_message(messages).content == "second"

    def test_skips_blank_user_messages(self):
        messages = normalize_messages([
            {"role": "user", "content": "real"},
            {"role": "user", "content": "  "},
        ])
        assert latest_user_message(messages).content == "real"


class TestMessageFormats:

    def test_to_llm_dict_has_no_id(self):
        msg = Message(id="x", role=MessageRole.USER, content="hi")
        assert msg.to_llm_dict() == {"role": "user", "content": "hi"}

    def test_to_dict_includes_id(self):
        msg = Message(id="x", role=MessageRole.USER, content="hi")
        assert msg.to_dict()["id"] == "x"

    def test_client_tool_message_replayed_as_assistant_text(self):
        msg = Message(id="t", role=MessageRole.TOOL, content='{"callId": "c1"}', name="start_call")
        assert msg.to_llm_dict() == {
            "role": "assistant",
            "content": '[Tool result (start_call)] {"callId": "c1"}',
        }
        assert msg.to_dict()["role"] == "tool"
