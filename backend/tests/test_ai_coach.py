import json
from datetime import date

import pytest

from app.core.errors import ExternalServiceError
from app.core.llm import resolve_model
from app.services.ai_coach import (
    MalformedModelOutput,
    build_analysis_context,
    parse_chat_reply,
    parse_habit_array,
    to_model_contents,
)
from conftest import auth_headers

HABITS_JSON = '[{"name": "Put on running shoes", "why": "Starting is the hard part"}]'


# Parsing

def test_habit_array_from_code_fence():
    text = f"Here you go:\n```json\n{HABITS_JSON}\n```"
    assert parse_habit_array(text) == [{"name": "Put on running shoes", "why": "Starting is the hard part"}]


def test_habit_array_rejects_objects_and_prose():
    with pytest.raises(MalformedModelOutput):
        parse_habit_array('{"name": "not a list"}')
    with pytest.raises(MalformedModelOutput):
        parse_habit_array("I think you should run more.")


def test_chat_reply_direct_json():
    reply = parse_chat_reply(json.dumps({"message": "How much time do you have?", "habits": None}))
    assert reply == {"message": "How much time do you have?", "habits": None}


def test_chat_reply_brace_substring():
    text = 'Sure!\n{"message": "Try these", "habits": [{"name": "One squat", "why": "Tiny"}]}\nGood luck'
    reply = parse_chat_reply(text)
    assert reply["message"] == "Try these"
    assert reply["habits"] == [{"name": "One squat", "why": "Tiny"}]


def test_chat_reply_raw_text_fallback():
    assert parse_chat_reply("Just keep going {oops") == {"message": "Just keep going {oops", "habits": None}


def test_model_contents_trim_and_roles():
    messages = [{"role": "user" if i % 2 == 0 else "assistant", "content": str(i)} for i in range(45)]
    contents = to_model_contents(messages)

    assert len(contents) == 40
    assert contents[0]["parts"][0]["text"] == "5"
    assert {c["role"] for c in contents} == {"user", "model"}


def test_unknown_model_falls_back_to_baseline():
    assert resolve_model("gemini-2.5-flash") == "gemini-2.5-flash"
    assert resolve_model("gpt-4") == "gemini-1.5-flash"
    assert resolve_model(None) == "gemini-1.5-flash"


def test_analysis_context_lines():
    habits = [{
        "name": "Read",
        "completed_dates": {"2026-10-19": True},
        "notes": {"2026-10-19": "on the bus"},
    }]
    context = build_analysis_context(habits, date(2026, 10, 19), days=2)
    assert context == "Habit: Read\n2026-10-18: Missed\n2026-10-19: Done (Note: on the bus)"


# Endpoints

def test_analyze(client, user, llm):
    llm.queue("Solid week.")

    response = client.post(
        "/api/ai/analyze",
        json={"apiKey": "k", "context": "Habit: Read", "modelName": "made-up"},
        headers=auth_headers(user),
    )

    assert response.status_code == 200
    assert response.json() == {"result": "Solid week."}
    assert llm.calls[0]["model"] == "gemini-1.5-flash"
    assert "Habit: Read" in llm.calls[0]["prompt"]


def test_analyze_requires_key_and_session(client, user):
    assert client.post("/api/ai/analyze", json={"context": "x"}).status_code == 401
    missing = client.post("/api/ai/analyze", json={"context": "x"}, headers=auth_headers(user))
    assert missing.status_code == 400
    assert missing.json() == {"error": "API Key is required"}


def test_analyze_model_failure_is_500(client, user, llm):
    llm.queue(ExternalServiceError("API key not valid"))

    response = client.post("/api/ai/analyze", json={"apiKey": "bad", "context": "x"}, headers=auth_headers(user))

    assert response.status_code == 500
    assert response.json() == {"error": "API key not valid"}


def test_single_shot_generation(client, user, llm):
    llm.queue(HABITS_JSON)

    response = client.post(
        "/api/ai/generate-habits",
        json={"apiKey": "k", "modelName": "gemini-2.0-flash", "goal": "Run a 5k"},
        headers=auth_headers(user),
    )

    assert response.status_code == 200
    assert response.json() == {"habits": [{"name": "Put on running shoes", "why": "Starting is the hard part"}]}


def test_single_shot_malformed_output_is_500(client, user, llm):
    llm.queue("Running is great! You should totally do it.")

    response = client.post(
        "/api/ai/generate-habits", json={"apiKey": "k", "goal": "Run a 5k"}, headers=auth_headers(user)
    )

    assert response.status_code == 500
    assert "error" in response.json()


def test_conversational_generation(client, user, llm):
    llm.queue('{"message": "What time of day suits you?", "habits": null}')

    response = client.post(
        "/api/ai/generate-habits",
        json={
            "apiKey": "k",
            "messages": [{"role": "user", "content": "I want to read more"}],
            "existingHabits": ["Floss one tooth"],
        },
        headers=auth_headers(user),
    )

    assert response.status_code == 200
    assert response.json() == {"message": "What time of day suits you?", "habits": None}
    assert "- Floss one tooth" in llm.calls[0]["system_instruction"]


def test_conversational_requires_messages(client, user):
    response = client.post(
        "/api/ai/generate-habits", json={"apiKey": "k", "messages": []}, headers=auth_headers(user)
    )
    assert response.status_code == 400
