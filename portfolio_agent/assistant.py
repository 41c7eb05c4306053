"""
Portfolio Agent Assistant — chat orchestration.

Public mode: the guide answers from the stored portfolio.
Private mode: the editor proposes a command, validation problems are fed
back for a bounded number of corrections, and the accepted command goes
through the executor.
"""

from __future__ import annotations

from typing import Any, Literal

import litellm
from loguru import logger
from pydantic import BaseModel, Field

from portfolio_agent.agents import AgentContext
from portfolio_agent.agents.editor import EditorAgent
from portfolio_agent.agents.guide import GuideAgent
from portfolio_agent.audit_logger import AuditLog
from portfolio_agent.config_loader import PortfolioAgentConfig, load_config
from portfolio_agent.event_bus import EventBus
from portfolio_agent.executor import CommandExecutor
from portfolio_agent.router import BudgetExceededError, Router
from portfolio_agent.store import DocumentKey, DocumentStore, build_store
from portfolio_agent.summary import summarize

ChatMode = Literal["public", "private"]

CONTEXT_KEYS = (
    DocumentKey.ABOUT,
    DocumentKey.SKILLS,
    DocumentKey.PROJECTS,
    DocumentKey.GOALS,
    DocumentKey.JOURNEY,
)

BUSY_MESSAGE = "The AI service is currently busy. Please try again in a few seconds."
RATE_LIMIT_MESSAGE = "Too many requests. Please wait a moment and try again."
BUDGET_MESSAGE = "This session has used up its model budget. Start a new session to continue."
GENERIC_MESSAGE = "Failed to generate response. Please try again."


class ChatReply(BaseModel):
    reply: str
    mode: ChatMode
    command: dict[str, Any] | None = None
    summary: str | None = None
    success: bool | None = None
    audit_log_id: str | None = None
    attempts: int = 0
    errors: list[str] = Field(default_factory=list)


def friendly_error(exc: BaseException) -> str:
    """Map a model-call failure to something a site visitor can read."""
    if isinstance(exc, BudgetExceededError):
        return BUDGET_MESSAGE
    text = str(exc).lower()
    if isinstance(exc, litellm.ServiceUnavailableError) or "overloaded" in text or "503" in text:
        return BUSY_MESSAGE
    if isinstance(exc, litellm.RateLimitError) or "429" in text or "rate limit" in text:
        return RATE_LIMIT_MESSAGE
    return GENERIC_MESSAGE


class PortfolioAssistant:
    def __init__(
        self,
        config: PortfolioAgentConfig,
        store: DocumentStore,
        router: Router | None = None,
        bus: EventBus | None = None,
    ):
        self.config = config
        self.store = store
        self.router = router or Router(config)
        self.audit_log = AuditLog(
            store,
            max_entries=config.audit.max_entries,
            confirmation_code=config.audit.confirmation_code,
        )
        self.executor = CommandExecutor(store, self.audit_log, bus=bus)
        self.guide = GuideAgent(self.router)
        self.editor = EditorAgent(self.router)

    async def portfolio_context(self) -> dict[str, Any]:
        return {key.value: await self.store.read(key) for key in CONTEXT_KEYS}

    async def chat(
        self,
        messages: list[dict[str, str]],
        mode: ChatMode = "public",
        authorized: bool = False,
    ) -> ChatReply:
        """
        Handle one chat turn. `messages` is the conversation so far, ending
        with the user's latest message. Never raises for model failures.
        """
        if mode == "private" and not authorized:
            return ChatReply(reply="Private mode requires authorization.", mode=mode, success=False)

        history = messages[-self.config.limits.history_window:]
        try:
            context = AgentContext(conversation=history, portfolio=await self.portfolio_context())
            if mode == "private":
                return await self._edit(context)
            return await self._answer(context)
        except Exception as e:
            logger.exception(f"[ASSISTANT] {mode} chat failed")
            return ChatReply(reply=friendly_error(e), mode=mode, success=False)

    async def _answer(self, context: AgentContext) -> ChatReply:
        out = await self.guide.run(context, temperature=0.7)
        return ChatReply(reply=out["reply"], mode="public", attempts=1)

    async def _edit(self, context: AgentContext) -> ChatReply:
        max_attempts = 1 + self.config.limits.max_correction_attempts
        out: dict[str, Any] = {}

        for attempt in range(1, max_attempts + 1):
            out = await self.editor.run(context)
            if out["command"] is not None:
                break
            logger.info(f"[ASSISTANT] Attempt {attempt}/{max_attempts} rejected: {len(out['errors'])} problem(s)")
            context = context.model_copy(update={
                "corrections": out["errors"],
                "previous_output": out["raw_response"],
            })
        else:
            problems = "\n".join(f"• {p}" for p in out.get("errors", []))
            return ChatReply(
                reply=f"❌ I couldn't turn that into a valid change.\n{problems}",
                mode="private",
                success=False,
                attempts=max_attempts,
                errors=out.get("errors", []),
            )

        cmd = out["command"]
        result = await self.executor.execute(cmd)
        return ChatReply(
            reply=f"{'✅' if result.success else '❌'} {result.message}",
            mode="private",
            command=cmd.to_wire(),
            summary=summarize(cmd),
            success=result.success,
            audit_log_id=result.audit_log_id,
            attempts=attempt,
        )

    async def aclose(self) -> None:
        await self.store.aclose()


def create_assistant(config: PortfolioAgentConfig | None = None, bus: EventBus | None = None) -> PortfolioAssistant:
    """Wire an assistant from configuration."""
    config = config or load_config()
    return PortfolioAssistant(config, build_store(config.storage), bus=bus)
