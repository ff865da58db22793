"""LLMClassifier: asks a chat model, through LiteLLM, whether an action is safe."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

import litellm

from permission_hook.errors import ClassifierError
from permission_hook.policy.models import Allow, Defer, Deny

if TYPE_CHECKING:
    from permission_hook.config import LLMSettings
    from permission_hook.policy.models import Verdict

logger = logging.getLogger(__name__)

PROMPT_TEMPLATE = (
    "You are a security analyzer for a coding assistant. Analyze this tool request "
    "and decide if it's SAFE or DANGEROUS.\n\n"
    "Tool: {tool_name}\n"
    "Input: {tool_input}\n\n"
    "Rules:\n"
    "- SAFE: Read operations, standard dev commands, file edits in project directories\n"
    "- DANGEROUS: System modifications, data deletion, network attacks, credential exposure\n\n"
    "Respond with only: SAFE or DANGEROUS"
)


class LLMClassifier:
    """Tier 3 classifier backed by any model LiteLLM can reach.

    Satisfies the :class:`~permission_hook.policy.engine.Classifier` protocol.
    Answers other than ``SAFE`` or ``DANGEROUS`` defer to the user.
    """

    def __init__(self, settings: LLMSettings) -> None:
        self._settings = settings

    def build_request(self, tool_name: str, tool_input: dict[str, Any]) -> dict[str, Any]:
        """Keyword arguments for ``litellm.acompletion``."""
        prompt = PROMPT_TEMPLATE.format(
            tool_name=tool_name,
            tool_input=json.dumps(tool_input, indent=2, ensure_ascii=False),
        )
        call_kwargs: dict[str, Any] = {
            "model": self._settings.model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": 10,
            "timeout": self._settings.timeout,
        }
        if self._settings.api_key:
            call_kwargs["api_key"] = self._settings.api_key
        if self._settings.api_base:
            call_kwargs["api_base"] = self._settings.api_base
        return call_kwargs

    async def classify(self, tool_name: str, tool_input: dict[str, Any]) -> Verdict:
        answer = await self._ask(self.build_request(tool_name, tool_input))
        logger.debug("Classifier answered %r for %s", answer, tool_name)
        if answer == "SAFE":
            return Allow(reason="LLM determined operation is safe")
        if answer == "DANGEROUS":
            return Deny(reason="LLM determined operation is dangerous")
        return Defer()

    async def _ask(self, call_kwargs: dict[str, Any]) -> str:
        try:
            response = await litellm.acompletion(**call_kwargs)  # pyright: ignore[reportUnknownMemberType]
        except Exception as exc:
            # litellm maps each provider failure to its own exception type.
            raise ClassifierError(f"Classifier request failed: {exc}") from exc

        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError, TypeError) as exc:
            raise ClassifierError(f"Unexpected classifier response: {response!r}") from exc
        if not isinstance(content, str):
            raise ClassifierError(f"Unexpected classifier content: {content!r}")
        return content.strip().upper()
