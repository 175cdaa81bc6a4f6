"""
Scoring oracle client: LLM-based batch scoring using OpenAI.
"""

import json
from typing import Any, Optional

from loguru import logger
from openai import AsyncOpenAI

from shared.config import Settings, get_settings

from .prompts import SCORE_OPPORTUNITIES_TOOL, SYSTEM_PROMPT, TOOL_NAME, build_user_prompt


class OracleResponseError(Exception):
    """The oracle answered without a usable structured tool call."""


class ScoringOracle:
    """Scores a batch of opportunities against a profile using a forced tool call."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.settings = settings or get_settings()
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        """Get or create OpenAI client."""
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.settings.openai_api_key.get_secret_value(),
                max_retries=0,  # retries are owned by the batch state machine
            )
        return self._client

    @property
    def model_version(self) -> str:
        return self.settings.openai_model

    async def score_batch(
        self, profile_context: str, opportunities_context: str
    ) -> dict[str, Any]:
        """
        Score one batch of opportunities.

        Returns:
            The raw tool arguments: {"matches": [...], "growthAreas": [...]}

        Raises:
            openai.APIError subclasses on transport, auth or rate-limit failures,
            OracleResponseError when no parsable tool call comes back.
        """
        response = await self.client.chat.completions.create(
            model=self.settings.openai_model,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": build_user_prompt(profile_context, opportunities_context),
                },
            ],
            tools=[SCORE_OPPORTUNITIES_TOOL],
            tool_choice={"type": "function", "function": {"name": TOOL_NAME}},
            temperature=self.settings.openai_temperature,
            max_tokens=self.settings.openai_max_tokens,
        )

        message = response.choices[0].message
        tool_call = next(
            (call for call in message.tool_calls or [] if call.function.name == TOOL_NAME),
            None,
        )
        if tool_call is None:
            raise OracleResponseError("No tool call in oracle response")

        try:
            arguments = json.loads(tool_call.function.arguments)
        except json.JSONDecodeError as e:
            raise OracleResponseError(f"JSON parse error: {e}") from e

        if not isinstance(arguments, dict):
            raise OracleResponseError("Tool arguments are not an object")

        logger.debug(
            f"Oracle returned {len(arguments.get('matches') or [])} matches, "
            f"{len(arguments.get('growthAreas') or [])} growth areas"
        )
        return arguments
