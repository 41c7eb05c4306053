"""
The Editor — turns owner instructions into commands.

Produces exactly one JSON command per turn. Its output is untrusted:
parse_response extracts the JSON object and runs it through the
command validator, returning either a command or the problems found so
the caller can send them back for another attempt.
"""

from __future__ import annotations

import json
import re
from typing import Any

from loguru import logger

from portfolio_agent.agents import AgentContext, BaseAgent
from portfolio_agent.commands import validate
from portfolio_agent.router import RouterResponse

_FENCE_RE = re.compile(r"```(?:json)?\s*|\s*```", re.IGNORECASE)
_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


def extract_json(text: str) -> str:
    """Strip code fences and keep the outermost {...} span, if any."""
    stripped = _FENCE_RE.sub("", text.strip())
    match = _OBJECT_RE.search(stripped)
    return match.group(0) if match else stripped


COMMAND_REFERENCE = """\
Projects:
  add_project {title, description, stack[], year (2020-2030), links?{github?, live?}, featured?, status? ("planning"|"in-progress"|"completed"), lessons[]?}
  update_project {matchTitle, patch{any of: title, description, stack, year, links, featured, status, lessons}}
  remove_project {matchTitle}
  reorder_projects {strategy ("featured_first"|"by_year_desc"|"by_year_asc"|"by_tech_stack"|"by_status"|"custom_order"), customOrder[]? (titles), description?}
  adaptive_sort_projects {intent ("prioritize_specific_project"|"prioritize_category"|"prioritize_technology"|"prioritize_by_keywords"|"custom_adaptive_sort"), targetProject?, category? ("ai_ml"|"data_science"|"web_development"|"mobile_development"|"backend"|"full_stack"|"cloud_computing"|"automation"), technologies[]?, keywords[]?, reasoning?}
Skills:
  add_skill {name, iconName, colorClass, category ("Frontend"|"Backend"|"Mobile"|"AI/ML"|"Databases"|"Tools"), level (0-100)}
  update_skill {matchName, patch{any of: name, iconName, colorClass, category, level}}
  remove_skill {matchName}
About:
  update_about {field ("name"|"title"|"location"|"bio"|"email"|"github"|"linkedin"), value}
  add_role {role}
  remove_role {role}
Goals:
  add_goal {type ("shortTerm"|"longTerm"), goal}
  update_goals {field ("currentFocus"|"vision"|"mission"), value}
  remove_goal {matchGoal}
Journey:
  add_journey_item {timeline ("student"|"entrepreneur"), year, title, desc, icon?, iconColor?}
  update_journey_item {timeline, itemId, patch{any of: year, title, desc, icon, iconColor}}
  remove_journey_item {timeline, itemId}
  reorder_journey {timeline, strategy ("by_year_asc"|"by_year_desc"|"custom_order"), customOrder[]? (ids)}
Audit:
  undo_command {auditLogId, reason?}
  view_audit_logs {limit? (1-100), offset?, filterBy?{commandType?, category?, successOnly?, destructiveOnly?, dateRange?{start?, end?}}}
  clear_audit_logs {olderThan?, confirmationCode}
Other:
  noop {reason?}
"""


class EditorAgent(BaseAgent):
    role = "editor"

    system_prompt = """You are the portfolio management assistant. You can read and modify portfolio data.

You MUST respond with a single valid JSON object ONLY. No markdown, no commentary.
The object has the shape {"type": "<command>", "payload": {...}}.

Available commands and payloads:
__COMMANDS__
Rules:
- Use exactly the field names above. Unknown fields are rejected.
- Numbers must be JSON numbers, booleans JSON booleans.
- Match existing entries by the titles, names and ids shown in the data below.
- If the request is a question or needs no change, respond with noop and put your answer in "reason".
- Clearing audit logs needs the confirmation code from the user; never invent it.

Current portfolio data:
__PORTFOLIO__
"""

    async def run(self, context: AgentContext, **kwargs) -> dict[str, Any]:
        """Override run to enforce JSON mode at the API level."""
        kwargs["response_format"] = {"type": "json_object"}
        return await super().run(context, **kwargs)

    def build_messages(self, context: AgentContext) -> list[dict[str, str]]:
        system = (
            self.system_prompt
            .replace("__COMMANDS__", COMMAND_REFERENCE)
            .replace("__PORTFOLIO__", context.portfolio_json())
        )
        messages = [self._system_msg(system), *self._history(context)]

        if context.corrections:
            problems = "\n".join(f"- {p}" for p in context.corrections)
            messages.append({"role": "assistant", "content": context.previous_output})
            messages.append(self._user_msg(
                f"That command was rejected:\n{problems}\n\n"
                "Respond again with one corrected JSON command."
            ))
        return messages

    def parse_response(self, response: RouterResponse, context: AgentContext) -> dict[str, Any]:
        content = response.content.strip()
        result = validate(extract_json(content))

        if result.ok:
            logger.info(f"[EDITOR] Proposed {result.command.type}")
        else:
            logger.warning(f"[EDITOR] Rejected output: {'; '.join(result.errors)}")
            logger.debug(f"[EDITOR] Raw response: {content[:500]}")

        return {
            "command": result.command,
            "errors": result.errors,
            "raw_response": content,
            "_agent": "editor",
            "_model": response.model,
            "_tokens": response.tokens_used,
            "_cost": response.cost,
        }
