from __future__ import annotations

import asyncio

from loguru import logger

from marketlens.api_client import ApiClient
from marketlens.chat.answers import extract_answer
from marketlens.config import settings
from marketlens.models.chat import ChatHistory, ChatMessage, Role, doc_context, workspace_context
from marketlens.models.events import ChatError, ResponseReady, ThinkingStarted, UserMessageAppended
from marketlens.models.schemas import StreamEvent
from marketlens.services.app_state import AppState
from marketlens.services.event_bus import EventBus

NO_RESPONSE = "No response received"


class _TurnSettled(Exception):
    """Stops reading a turn's stream once it has an answer or was cancelled."""


class ChatSession:
    """Per-context conversation history and turn submission.

    Histories live only as long as the session object. Each context key has its
    own in-flight marker: `cancel(key)` affects only the turn running for that
    key, drops any answer that arrives for it afterwards and skips its fallback
    status query. Cancellation cannot interrupt a network read already in
    progress; it takes effect when that read returns.
    """

    def __init__(
        self,
        bus: EventBus,
        api: ApiClient | None = None,
        state: AppState | None = None,
        *,
        demo_delay: float | None = None,
        history_limit: int | None = None,
        prompt_turns: int | None = None,
    ):
        self.bus = bus
        self.api = api
        self.state = state
        self.demo_delay = settings.demo_chat_delay_seconds if demo_delay is None else demo_delay
        self.history_limit = settings.chat_history_limit if history_limit is None else history_limit
        self.prompt_turns = settings.chat_prompt_turns if prompt_turns is None else prompt_turns
        self._histories: dict[str, ChatHistory] = {}
        self._active: dict[str, object] = {}

    # --- History ---

    def history(self, context_key: str) -> list[ChatMessage]:
        history = self._histories.get(context_key)
        return history.messages() if history else []

    def clear_history(self, context_key: str) -> None:
        self._histories.pop(context_key, None)

    def _append(self, context_key: str, role: Role, content: str) -> ChatMessage:
        history = self._histories.get(context_key)
        if history is None:
            history = self._histories[context_key] = ChatHistory(self.history_limit)
        return history.append(role, content)

    def _respond(self, context_key: str, answer: str) -> None:
        self._append(context_key, "assistant", answer)
        self.bus.emit(ResponseReady(context_key=context_key, answer=answer))

    # --- Cancellation ---

    def is_active(self, context_key: str) -> bool:
        return context_key in self._active

    def cancel(self, context_key: str) -> bool:
        return self._active.pop(context_key, None) is not None

    # --- Turns ---

    def build_task(
        self,
        context_key: str,
        question: str,
        *,
        preamble: str = "",
        question_label: str = "Current question",
    ) -> str:
        """Task text for the current turn; history already ends with the question."""
        history = self.history(context_key)
        task = preamble
        if len(history) > 2:
            prior = history[-(self.prompt_turns + 1):-1]
            transcript = "\n".join(f"{m.speaker}: {m.content}" for m in prior)
            task += f"Previous conversation:\n{transcript}\n\n"
        return task + f"{question_label}: {question}"

    async def send(
        self,
        context_key: str,
        question: str,
        *,
        preamble: str = "",
        question_label: str = "Current question",
        demo_answer: str | None = None,
    ) -> str | None:
        """Run one chat turn. Returns the answer, or None when the turn ended in an error."""
        self._append(context_key, "user", question)
        self.bus.emit(UserMessageAppended(context_key=context_key, question=question))
        self.bus.emit(ThinkingStarted(context_key=context_key))

        if self.api is None:
            await asyncio.sleep(self.demo_delay)
            answer = demo_answer or "This is a demo response. In live mode, Scout would answer your question."
            self._respond(context_key, answer)
            return answer

        turn = object()
        self._active[context_key] = turn

        def is_current() -> bool:
            return self._active.get(context_key) is turn

        try:
            task = self.build_task(
                context_key, question, preamble=preamble, question_label=question_label
            )
            handle = await self.api.execute_async(task)
            answer: str | None = None

            def on_event(event: StreamEvent) -> None:
                nonlocal answer
                if not is_current():
                    raise _TurnSettled
                if event.type == "answer" and event.message:
                    answer = extract_answer(event.message)
                    self._respond(context_key, answer)
                    raise _TurnSettled

            try:
                await self.api.stream(handle, on_event)
            except _TurnSettled:
                pass

            if answer is not None:
                return answer
            if not is_current():
                logger.info(f"Chat turn for {context_key} cancelled")
                return None

            run = await self.api.get_run_status(handle)
            if not is_current():
                logger.info(f"Chat turn for {context_key} cancelled")
                return None
            if run.message:
                answer = extract_answer(run.message)
                self._respond(context_key, answer)
                return answer

            self.bus.emit(ChatError(context_key=context_key, error=NO_RESPONSE))
            return None
        except Exception as e:
            logger.exception(f"Chat error for {context_key}")
            self.bus.emit(ChatError(context_key=context_key, error=str(e) or type(e).__name__))
            return None
        finally:
            if is_current():
                del self._active[context_key]

    async def send_doc_chat(self, doc_id: str, doc_title: str, question: str) -> str | None:
        return await self.send(
            doc_context(doc_id),
            question,
            preamble=f"DOCUMENT CONTEXT: Analyze document ID {doc_id} ({doc_title})\n\n",
            demo_answer=(
                f'This is a demo response about "{doc_title}". In live mode, Scout would '
                "analyze the document and provide insights based on your question."
            ),
        )

    async def send_workspace_chat(self, ws_id: str, ws_name: str, question: str) -> str | None:
        docs = self.state.workspace_docs(ws_id) if self.state else []
        doc_list = "\n".join(f"- {d.title} (ID: {d.id})" for d in docs)
        return await self.send(
            workspace_context(ws_id),
            question,
            preamble=f'WORKSPACE CONTEXT: "{ws_name}"\nDocuments in workspace:\n{doc_list}\n\n',
            question_label="Question",
            demo_answer=(
                f'Demo response for workspace "{ws_name}". In live mode, Scout would '
                "analyze all documents in this workspace."
            ),
        )
