"""
Portfolio Agent Roster

Each agent is:
  - A system prompt
  - A structured input template
  - A constrained output schema

Agents are stateless between runs. State lives in the document store.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from typing import Any

from pydantic import BaseModel

from portfolio_agent.router import Router, RouterResponse


class AgentContext(BaseModel):
    """Shared context passed to every agent invocation."""
    conversation: list[dict[str, str]] = []  # [{"role": "user"|"assistant", "content": ...}]
    portfolio: dict[str, Any] = {}  # document key → document
    corrections: list[str] = []  # problems with the previous attempt, if any
    previous_output: str = ""
    extra: dict[str, Any] = {}

    def portfolio_json(self) -> str:
        return json.dumps(self.portfolio, indent=2, ensure_ascii=False)


class BaseAgent(ABC):
    """
    Base class for all portfolio agents.

    Subclasses define:
      - role: str — maps to router model
      - system_prompt: str — agent personality + constraints
      - build_messages() — constructs the chat messages
      - parse_response() — extracts structured output
    """

    role: str = "unknown"
    system_prompt: str = "You are a helpful assistant."

    def __init__(self, router: Router):
        self.router = router

    async def run(self, context: AgentContext, **kwargs) -> dict[str, Any]:
        """Execute the agent: build messages → call model → parse."""
        messages = self.build_messages(context)
        response = await self.router.complete(
            role=self.role,
            messages=messages,
            **kwargs,
        )
        return self.parse_response(response, context)

    @abstractmethod
    def build_messages(self, context: AgentContext) -> list[dict[str, str]]:
        """Build the message list for the LLM call."""
        ...

    @abstractmethod
    def parse_response(self, response: RouterResponse, context: AgentContext) -> dict[str, Any]:
        """Parse the LLM response into structured output."""
        ...

    def _system_msg(self, content: str | None = None) -> dict[str, str]:
        return {"role": "system", "content": content or self.system_prompt}

    def _user_msg(self, content: str) -> dict[str, str]:
        return {"role": "user", "content": content}

    @staticmethod
    def _history(context: AgentContext) -> list[dict[str, str]]:
        return [
            {"role": m["role"], "content": m["content"]}
            for m in context.conversation
            if m.get("role") in ("user", "assistant") and m.get("content")
        ]
