"""
The Guide — public portfolio Q&A.

Answers visitors' questions from the stored portfolio content only.
Never proposes or executes changes.
"""

from __future__ import annotations

import json
from typing import Any

from loguru import logger

from portfolio_agent.agents import AgentContext, BaseAgent
from portfolio_agent.router import RouterResponse

FALLBACK_REPLY = "Hello! I'm the portfolio assistant. Ask me about projects, skills or goals!"

# Public answers only see the first few projects.
PUBLIC_PROJECT_LIMIT = 3


class GuideAgent(BaseAgent):
    role = "guide"

    system_prompt = """You are the AI assistant on a personal portfolio website.
You answer visitors' questions about the site owner's background, skills, projects, goals and journey.

Current portfolio information:
{portfolio}

Guidelines:
- Be friendly and professional.
- Answer only from the portfolio data above.
- If asked about something not in the data, say politely that you don't have that information.
- Don't mention technical implementation details.
- Focus on achievements and capabilities.
"""

    def build_messages(self, context: AgentContext) -> list[dict[str, str]]:
        public = dict(context.portfolio)
        projects = public.get("projects")
        if isinstance(projects, list):
            public["projects"] = projects[:PUBLIC_PROJECT_LIMIT]
        public.pop("audit_logs", None)

        system = self.system_prompt.format(portfolio=json.dumps(public, indent=2, ensure_ascii=False))
        return [self._system_msg(system), *self._history(context)]

    def parse_response(self, response: RouterResponse, context: AgentContext) -> dict[str, Any]:
        reply = response.content.strip() or FALLBACK_REPLY
        logger.info(f"[GUIDE] Answered ({response.tokens_used} tokens)")
        return {
            "reply": reply,
            "_agent": "guide",
            "_model": response.model,
            "_tokens": response.tokens_used,
            "_cost": response.cost,
        }
