#!/usr/bin/env python3
"""
Configuration management for the sales chatbot backend.
"""

import os
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

DATA_DIR = os.path.join(os.path.dirname(__file__), "..", "data")


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class Config:
    """Configuration class for the application."""

    # Database
    DATABASE_URL = os.getenv(
        "DATABASE_URL",
        f"sqlite:///{os.path.abspath(os.path.join(DATA_DIR, 'salesbot.db'))}",
    )

    # Redis (pending-intent store); in-memory storage is used when disabled or unreachable
    USE_REDIS = _flag("USE_REDIS")
    REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    # OpenAI-compatible chat completions endpoint
    LLM_API_KEY = os.getenv("LLM_API_KEY") or os.getenv("OPENAI_API_KEY")
    LLM_BASE_URL = os.getenv("LLM_BASE_URL", "https://api.openai.com/v1").rstrip("/")
    LLM_MODEL = os.getenv("LLM_MODEL", "gpt-4o-mini")
    LLM_TEMPERATURE = float(os.getenv("LLM_TEMPERATURE", "0.1"))
    LLM_TIMEOUT_SECONDS = float(os.getenv("LLM_TIMEOUT_SECONDS", "60"))

    # Agent / checkout limits
    MAX_TOOL_HOPS = int(os.getenv("MAX_TOOL_HOPS", "4"))
    CART_MAX_QTY = int(os.getenv("CART_MAX_QTY", "99"))
    HISTORY_MESSAGES = int(os.getenv("HISTORY_MESSAGES", "30"))
    CANDIDATES_TTL_SECONDS = int(os.getenv("CANDIDATES_TTL_SECONDS", "600"))

    # Bot ownership (single-bot deployment)
    OWNER_ID = os.getenv("MINI_OWNER_ID", "mini-owner")
    BOT_NAME = os.getenv("BOT_NAME", "Mini AYOLIN")

    @classmethod
    def debug_print(cls):
        print(f"[CONFIG] DATABASE_URL={cls.DATABASE_URL}")
        print(f"[CONFIG] USE_REDIS={cls.USE_REDIS} REDIS_URL={cls.REDIS_URL}")
        print(f"[CONFIG] LLM_MODEL={cls.LLM_MODEL} base={cls.LLM_BASE_URL} set={bool(cls.LLM_API_KEY)}")
        print(f"[CONFIG] MAX_TOOL_HOPS={cls.MAX_TOOL_HOPS} CART_MAX_QTY={cls.CART_MAX_QTY}")

    @classmethod
    def has_llm(cls) -> bool:
        # 'test'/'dev' sentinels keep local runs on the rule path only
        return bool(cls.LLM_API_KEY) and cls.LLM_API_KEY not in ("test", "dev")

    @classmethod
    def validate(cls):
        """Validate that the numeric limits are usable."""
        invalid = []
        if cls.MAX_TOOL_HOPS < 1:
            invalid.append("MAX_TOOL_HOPS")
        if cls.CART_MAX_QTY < 1:
            invalid.append("CART_MAX_QTY")
        if cls.HISTORY_MESSAGES < 0:
            invalid.append("HISTORY_MESSAGES")
        if not cls.DATABASE_URL:
            invalid.append("DATABASE_URL")

        if invalid:
            raise ValueError(f"Invalid configuration: {', '.join(invalid)}")

        return True

# Validate configuration on import
Config.validate()
