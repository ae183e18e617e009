"""Gemini-backed generation oracle."""

from __future__ import annotations

import os
from typing import Sequence

import google.generativeai as genai
from dotenv import load_dotenv

from dialogue_mcts.errors import OracleTransportError
from dialogue_mcts.oracle.base import Completion, LLMOracle
from dialogue_mcts.state import Turn

load_dotenv()

_ROLE_MAP = {"user": "user", "assistant": "model"}


class GeminiOracle(LLMOracle):
    """
    Oracle that samples candidates and judgments from a Gemini model.

    A GenerativeModel is built per call because the system instruction is
    bound at model construction and differs between searches.
    """

    def __init__(
        self,
        model: str = "gemini-2.5-flash",
        api_key: str | None = None,
        temperature: float = 0.8,
        max_tokens: int = 4096,
        judge_temperature: float = 0.1,
        judge_max_tokens: int = 256,
    ):
        """
        Initialize the Gemini oracle.

        Args:
            model: Gemini model to use
            api_key: API key (defaults to GEMINI_API_KEY env var)
            temperature: Base temperature for candidate replies
            max_tokens: Output limit for candidate replies
            judge_temperature: Temperature for ratings and evaluations
            judge_max_tokens: Output limit for ratings and evaluations
        """
        super().__init__(
            temperature=temperature,
            max_tokens=max_tokens,
            judge_temperature=judge_temperature,
            judge_max_tokens=judge_max_tokens,
        )
        api_key = api_key or os.getenv("GEMINI_API_KEY")
        if not api_key:
            raise ValueError("GEMINI_API_KEY not found")

        genai.configure(api_key=api_key)
        self.model_name = model

    async def complete(
        self,
        system: str,
        messages: Sequence[Turn],
        temperature: float,
        max_tokens: int,
    ) -> Completion:
        model = genai.GenerativeModel(
            self.model_name,
            system_instruction=system or None,
        )
        contents = [{"role": _ROLE_MAP[m.role], "parts": [m.text]} for m in messages]
        try:
            response = await model.generate_content_async(
                contents,
                generation_config={
                    "temperature": temperature,
                    "max_output_tokens": max_tokens,
                },
            )
            text = response.text
        except Exception as e:
            raise OracleTransportError(f"Gemini call failed: {e}") from e

        usage = getattr(response, "usage_metadata", None)
        return Completion(
            text=text,
            prompt_tokens=getattr(usage, "prompt_token_count", 0) or 0,
            completion_tokens=getattr(usage, "candidates_token_count", 0) or 0,
        )
