from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest
from openai import OpenAIError

from word_garden import accounts, tutor
from word_garden.errors import ExternalServiceError, NotFoundError, ValidationError


def fake_completion(text):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=text))])


@pytest.fixture
def keyed_user(user_id):
    accounts.save_api_key(user_id, "sk-test")
    return user_id


def test_ask_tutor_records_both_turns(keyed_user):
    with patch("word_garden.tutor.OpenAI") as openai_cls:
        client = MagicMock()
        client.chat.completions.create.return_value = fake_completion("我们一起来看看这道题。")
        openai_cls.return_value = client

        reply = tutor.ask_tutor(keyed_user, "3 + 4 等于几？")

    assert reply == "我们一起来看看这道题。"
    kwargs = openai_cls.call_args.kwargs
    assert kwargs["api_key"] == "sk-test"
    assert kwargs["base_url"] == tutor.AI_TUTOR_BASE_URL
    assert kwargs["timeout"] == tutor.AI_TUTOR_TIMEOUT

    messages = client.chat.completions.create.call_args.kwargs["messages"]
    assert messages[0] == {"role": "system", "content": tutor.SYSTEM_PROMPT}
    assert messages[1]["content"] == [{"type": "text", "text": "3 + 4 等于几？"}]

    history = tutor.list_history(keyed_user)
    assert [(m["role"], m["content"]) for m in history] == [
        ("user", "3 + 4 等于几？"),
        ("ai", "我们一起来看看这道题。"),
    ]


def test_ask_tutor_sends_image_as_data_url(keyed_user):
    with patch("word_garden.tutor.OpenAI") as openai_cls:
        client = openai_cls.return_value
        client.chat.completions.create.return_value = fake_completion("这是一道加法题。")
        tutor.ask_tutor(keyed_user, image="data:image/png;base64,QUJD")

    content = client.chat.completions.create.call_args.kwargs["messages"][1]["content"]
    assert content == [{"type": "image_url", "image_url": {"url": "data:image/jpeg;base64,QUJD"}}]
    assert tutor.list_history(keyed_user)[0]["image_data"] == "data:image/png;base64,QUJD"


def test_failed_call_keeps_question(keyed_user):
    with patch("word_garden.tutor.OpenAI") as openai_cls:
        openai_cls.return_value.chat.completions.create.side_effect = OpenAIError("connection reset")
        with pytest.raises(ExternalServiceError):
            tutor.ask_tutor(keyed_user, "你好")

    history = tutor.list_history(keyed_user)
    assert [m["role"] for m in history] == ["user"]


def test_ask_tutor_without_key(user_id):
    with patch("word_garden.tutor.OpenAI") as openai_cls:
        with pytest.raises(ValidationError):
            tutor.ask_tutor(user_id, "你好")
        openai_cls.assert_not_called()
    assert tutor.list_history(user_id) == []


def test_ask_tutor_requires_prompt_or_image(keyed_user):
    with pytest.raises(ValidationError):
        tutor.ask_tutor(keyed_user, "")


def test_delete_single_message_and_all(keyed_user):
    with patch("word_garden.tutor.OpenAI") as openai_cls:
        openai_cls.return_value.chat.completions.create.return_value = fake_completion("好的")
        tutor.ask_tutor(keyed_user, "一")
        tutor.ask_tutor(keyed_user, "二")

    history = tutor.list_history(keyed_user)
    assert len(history) == 4
    assert tutor.delete_history(keyed_user, history[0]["id"]) == 1
    assert len(tutor.list_history(keyed_user)) == 3

    with pytest.raises(NotFoundError):
        tutor.delete_history(keyed_user, history[0]["id"])

    assert tutor.delete_history(keyed_user) == 3
    assert tutor.list_history(keyed_user) == []


def test_history_is_per_user(keyed_user, other_user_id):
    with patch("word_garden.tutor.OpenAI") as openai_cls:
        openai_cls.return_value.chat.completions.create.return_value = fake_completion("好的")
        tutor.ask_tutor(keyed_user, "一")
    assert tutor.list_history(other_user_id) == []
    message_id = tutor.list_history(keyed_user)[0]["id"]
    with pytest.raises(NotFoundError):
        tutor.delete_history(other_user_id, message_id)
