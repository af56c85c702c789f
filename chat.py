from __future__ import annotations

import logging
import time
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Protocol


logger = logging.getLogger(__name__)

HISTORY_LIMIT = 6

WELCOME_MESSAGE = (
    "Hi there! I'm your Overseas Education Guide. I can help with:\n\n"
    "- **University Selection**: Top universities by country/program\n"
    "- **Application Process**: Deadlines, requirements, documents\n"
    "- **Visa Requirements**: Country-specific visa processes\n"
    "- **Scholarships**: Merit & need-based funding options\n"
    "- **Costs & Living**: Tuition fees, accommodation, expenses\n"
    "- **Tests & Scores**: IELTS, TOEFL, GRE, GMAT requirements\n\n"
    "What would you like to know about studying abroad? You can ask specific questions like "
    "'When are UK university application deadlines?' or 'What are visa requirements for Canada?'"
)
GENERATION_FAILED_MESSAGE = "I apologize, but I'm having trouble generating a response. Please try again later."

PROMPT_TEMPLATE = """You are an expert Overseas Education Guide. Provide a concise response (2-3 sentences) to the student's question about studying abroad.

{history}
The student's current question is: "{question}"

Guidelines for your response:
1. Maintain context from the previous messages when responding
2. If the student is asking follow-up questions, connect them to previous messages
3. Keep it brief and to the point
4. Focus on the most important information
5. Use **bold** for key points or deadlines
6. If more details are needed, suggest what specific information to ask about
7. If you don't have specific information (like exact dates), don't apologize - suggest where to find that information
"""


@dataclass
class ChatMessageRecord:
    id: int
    session_id: str
    type: str
    text: str
    created_at: datetime | None = None


class ChatStore(Protocol):
    def create_session(self, user_id: str | None = None) -> str: ...

    def has_messages(self, session_id: str) -> bool: ...

    def insert_message(self, session_id: str, message_type: str, text: str) -> ChatMessageRecord: ...

    def list_messages(self, session_id: str, limit: int | None = None) -> list[ChatMessageRecord]: ...

    def delete_session(self, session_id: str) -> None: ...


MessageCallback = Callable[[ChatMessageRecord], None]


def build_prompt(question: str, history: list[ChatMessageRecord]) -> str:
    history_text = ""
    if history:
        lines = ["Previous conversation:"]
        for message in history:
            speaker = "Student" if message.type == "user" else "Assistant"
            lines.append(f"{speaker}: {message.text}")
        history_text = "\n".join(lines) + "\n"
    return PROMPT_TEMPLATE.format(history=history_text, question=question)


class ChatService:
    """Study-abroad assistant conversation bound to one chat session.

    Construct one per visitor; nothing is shared between instances except the
    store and the text generator passed in.
    """

    def __init__(
        self,
        store: ChatStore,
        generate: Callable[[str], str],
        max_retries: int = 3,
        retry_delay: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
        user_id: str | None = None,
    ):
        self.store = store
        self.generate = generate
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.sleep = sleep
        self.user_id = user_id
        self._session_id: str | None = None
        self._subscribers: dict[str, list[MessageCallback]] = defaultdict(list)

    @property
    def session_id(self) -> str | None:
        return self._session_id

    def initialize_session(self) -> str:
        if self._session_id:
            return self._session_id

        self._session_id = self.store.create_session(self.user_id)
        if not self.store.has_messages(self._session_id):
            self._store_message("bot", WELCOME_MESSAGE)
        return self._session_id

    def send_message(self, text: str) -> ChatMessageRecord:
        session_id = self.initialize_session()
        history = self._recent_history(session_id)
        self._store_message("user", text)

        reply = self.generate_reply(text, history)
        stored = self._store_message("bot", reply)
        return stored or ChatMessageRecord(id=0, session_id=session_id, type="bot", text=reply)

    def generate_reply(self, question: str, history: list[ChatMessageRecord]) -> str:
        prompt = build_prompt(question, history)
        for attempt in range(1, self.max_retries + 1):
            try:
                return self.generate(prompt)
            except Exception as exc:
                logger.warning("Chat reply attempt %d/%d failed: %s", attempt, self.max_retries, exc)
                if attempt < self.max_retries:
                    self.sleep(self.retry_delay * attempt)
        logger.error("All %d chat reply attempts failed", self.max_retries)
        return GENERATION_FAILED_MESSAGE

    def get_messages(self, session_id: str | None = None) -> list[ChatMessageRecord]:
        target = session_id or self._session_id
        if not target:
            return []
        return self.store.list_messages(target)

    def subscribe(self, session_id: str, callback: MessageCallback) -> Callable[[], None]:
        self._subscribers[session_id].append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers.get(session_id, []):
                self._subscribers[session_id].remove(callback)

        return unsubscribe

    def delete_history(self) -> None:
        if not self._session_id:
            return
        session_id = self._session_id
        self.store.delete_session(session_id)
        self._subscribers.pop(session_id, None)
        self._session_id = None

    def _recent_history(self, session_id: str) -> list[ChatMessageRecord]:
        try:
            return self.store.list_messages(session_id, limit=HISTORY_LIMIT)
        except Exception as exc:
            logger.warning("Could not load chat history for %s: %s", session_id, exc)
            return []

    def _store_message(self, message_type: str, text: str) -> ChatMessageRecord | None:
        try:
            message = self.store.insert_message(self._session_id, message_type, text)
        except Exception as exc:
            logger.error("Failed to store %s message: %s", message_type, exc)
            return None
        self._publish(message)
        return message

    def _publish(self, message: ChatMessageRecord) -> None:
        for callback in list(self._subscribers.get(message.session_id, [])):
            try:
                callback(message)
            except Exception as exc:
                logger.warning("Chat subscriber failed: %s", exc)
