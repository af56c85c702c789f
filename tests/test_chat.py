from __future__ import annotations

import pytest

from chat import (
    GENERATION_FAILED_MESSAGE,
    HISTORY_LIMIT,
    WELCOME_MESSAGE,
    ChatMessageRecord,
    ChatService,
    build_prompt,
)


class FakeChatStore:
    def __init__(self) -> None:
        self.sessions: dict[str, list[ChatMessageRecord]] = {}
        self.next_id = 1
        self.created = 0
        self.fail_inserts = False

    def create_session(self, user_id: str | None = None) -> str:
        self.created += 1
        session_id = f"session-{self.created}"
        self.sessions[session_id] = []
        return session_id

    def has_messages(self, session_id: str) -> bool:
        return bool(self.sessions.get(session_id))

    def insert_message(self, session_id: str, message_type: str, text: str) -> ChatMessageRecord:
        if self.fail_inserts:
            raise ConnectionError("store offline")
        message = ChatMessageRecord(id=self.next_id, session_id=session_id, type=message_type, text=text)
        self.next_id += 1
        self.sessions[session_id].append(message)
        return message

    def list_messages(self, session_id: str, limit: int | None = None) -> list[ChatMessageRecord]:
        messages = list(self.sessions.get(session_id, []))
        return messages[-limit:] if limit else messages

    def delete_session(self, session_id: str) -> None:
        self.sessions.pop(session_id, None)


class ScriptedGenerator:
    def __init__(self, *outcomes) -> None:
        self.outcomes = list(outcomes)
        self.prompts: list[str] = []

    def __call__(self, prompt: str) -> str:
        self.prompts.append(prompt)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def store() -> FakeChatStore:
    return FakeChatStore()


def make_service(store: FakeChatStore, generator, sleeps: list[float] | None = None) -> ChatService:
    recorded = sleeps if sleeps is not None else []
    return ChatService(store, generator, max_retries=3, retry_delay=1.0, sleep=recorded.append)


def test_initialize_session_posts_welcome_once(store: FakeChatStore) -> None:
    service = make_service(store, ScriptedGenerator())

    first = service.initialize_session()
    second = service.initialize_session()

    assert first == second
    messages = service.get_messages()
    assert [(m.type, m.text) for m in messages] == [("bot", WELCOME_MESSAGE)]


def test_send_message_stores_question_and_reply(store: FakeChatStore) -> None:
    generator = ScriptedGenerator("Apply by **January 15** through UCAS.")
    service = make_service(store, generator)

    reply = service.send_message("When are UK deadlines?")

    assert reply.type == "bot"
    assert reply.text == "Apply by **January 15** through UCAS."
    assert [m.type for m in service.get_messages()] == ["bot", "user", "bot"]
    assert 'The student\'s current question is: "When are UK deadlines?"' in generator.prompts[0]


def test_send_message_retries_with_linear_backoff(store: FakeChatStore) -> None:
    sleeps: list[float] = []
    generator = ScriptedGenerator(TimeoutError("slow"), RuntimeError("503"), "Third time lucky")
    service = make_service(store, generator, sleeps)

    reply = service.send_message("Visa for Canada?")

    assert reply.text == "Third time lucky"
    assert sleeps == [1.0, 2.0]
    assert len(generator.prompts) == 3


def test_send_message_returns_apology_after_all_retries(store: FakeChatStore) -> None:
    sleeps: list[float] = []
    generator = ScriptedGenerator(RuntimeError("a"), RuntimeError("b"), RuntimeError("c"))
    service = make_service(store, generator, sleeps)

    reply = service.send_message("Scholarships?")

    assert reply.text == GENERATION_FAILED_MESSAGE
    assert sleeps == [1.0, 2.0]
    assert service.get_messages()[-1].text == GENERATION_FAILED_MESSAGE


def test_prompt_uses_most_recent_history(store: FakeChatStore) -> None:
    answers = [f"answer {i}" for i in range(5)]
    generator = ScriptedGenerator(*answers)
    service = make_service(store, generator)

    for i in range(5):
        service.send_message(f"question {i}")

    last_prompt = generator.prompts[-1]
    assert "Student: question 3" in last_prompt
    assert "Assistant: answer 3" in last_prompt
    assert "question 0" not in last_prompt
    assert last_prompt.count("Student:") + last_prompt.count("Assistant:") == HISTORY_LIMIT


def test_build_prompt_without_history_skips_section() -> None:
    prompt = build_prompt("Hello?", [])
    assert "Previous conversation" not in prompt
    assert '"Hello?"' in prompt


def test_storage_failures_are_not_raised(store: FakeChatStore) -> None:
    service = make_service(store, ScriptedGenerator("Reply"))
    service.initialize_session()
    store.fail_inserts = True

    reply = service.send_message("Anyone there?")

    assert reply.text == "Reply"
    assert reply.id == 0


def test_subscribe_receives_new_messages_until_unsubscribed(store: FakeChatStore) -> None:
    service = make_service(store, ScriptedGenerator("one", "two"))
    session_id = service.initialize_session()
    received: list[str] = []

    unsubscribe = service.subscribe(session_id, lambda message: received.append(message.text))
    service.send_message("first")
    unsubscribe()
    service.send_message("second")

    assert received == ["first", "one"]


def test_subscriber_errors_do_not_break_sending(store: FakeChatStore) -> None:
    service = make_service(store, ScriptedGenerator("ok"))
    session_id = service.initialize_session()

    def broken(_: ChatMessageRecord) -> None:
        raise RuntimeError("listener crashed")

    service.subscribe(session_id, broken)

    assert service.send_message("hi").text == "ok"


def test_delete_history_resets_session(store: FakeChatStore) -> None:
    service = make_service(store, ScriptedGenerator("reply"))
    old_session = service.initialize_session()
    service.send_message("hello")

    service.delete_history()

    assert service.session_id is None
    assert old_session not in store.sessions
    new_session = service.initialize_session()
    assert new_session != old_session
    assert [m.text for m in service.get_messages()] == [WELCOME_MESSAGE]
