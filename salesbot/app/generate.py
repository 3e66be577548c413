#!/usr/bin/env python3
"""
Generation module for the sales chatbot.

This module calls an OpenAI-compatible /chat/completions endpoint with the
conversation and the advertised tools, and returns the assistant message.
"""

import requests
from typing import Any, Dict, List, Optional

from .config import Config
from ..utils.logger import get_logger

logger = get_logger("generate")


class GenerationError(Exception):
    """Transport or protocol failure talking to the language model."""


class GenerationClient:
    """Client for chat completions with tool calling."""

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None,
                 model: Optional[str] = None, timeout: Optional[float] = None):
        """Initialize the generation client."""
        self.api_key = api_key or Config.LLM_API_KEY
        self.model = model or Config.LLM_MODEL
        self.base_url = (base_url or Config.LLM_BASE_URL).rstrip("/")
        self.timeout = timeout or Config.LLM_TIMEOUT_SECONDS

        if not self.api_key:
            raise ValueError("LLM API key is required")

    def complete(
        self,
        messages: List[Dict[str, Any]],
        tools: Optional[List[Dict[str, Any]]] = None,
        tool_choice: str = "auto",
        temperature: Optional[float] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Run one chat completion.

        Args:
            messages: Conversation in chat-completions format
            tools: Function definitions ({name, description, parameters})
            tool_choice: "auto", "none" or "required"
            temperature: Sampling temperature, defaults to LLM_TEMPERATURE

        Returns:
            The first choice's message dict, or None when the response has none
        """
        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": Config.LLM_TEMPERATURE if temperature is None else temperature,
        }
        if tools:
            payload["tools"] = [{"type": "function", "function": t} for t in tools]
            payload["tool_choice"] = tool_choice

        logger.info("[LLM] model=%s messages=%s tools=%s", self.model, len(messages), len(tools or []))
        try:
            response = requests.post(
                f"{self.base_url}/chat/completions",
                headers={"Authorization": f"Bearer {self.api_key}"},
                json=payload,
                timeout=self.timeout,
            )
            if response.status_code != 200:
                logger.warning("[LLM] error status=%s body=%s", response.status_code, response.text[:500])
                response.raise_for_status()
            data = response.json()
        except requests.exceptions.RequestException as e:
            raise GenerationError(f"Error calling language model: {e}") from e
        except ValueError as e:
            raise GenerationError(f"Invalid JSON from language model: {e}") from e

        choices = data.get("choices") or []
        if not choices:
            logger.warning("[LLM] response without choices")
            return None
        return choices[0].get("message")
