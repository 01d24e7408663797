"""
scriptswift/config.py — Centralized configuration
=================================================
Single source of truth for model settings, timeouts and turn limits.
Avoids scattering magic numbers across modules.
"""

import os


class ScriptConfig:
    """Central configuration for script generation and sessions."""

    # --- LLM ---
    CLAUDE_MODEL = os.environ.get("CLAUDE_MODEL", "claude-haiku-4-5-20251001")
    LLM_MAX_TOKENS = int(os.environ.get("LLM_MAX_TOKENS", "1024"))
    LLM_TEMPERATURE = float(os.environ.get("LLM_TEMPERATURE", "0.7"))
    LLM_TIMEOUT_SECONDS = float(os.environ.get("LLM_TIMEOUT_SECONDS", "45"))

    # --- Website analysis ---
    SUMMARY_MAX_TOKENS = 1024
    SUMMARY_TEMPERATURE = 0.2
    WEBSITE_CONTENT_MAX_CHARS = 20000

    # --- Content fetch (stub) ---
    FETCH_TIMEOUT_SECONDS = float(os.environ.get("FETCH_TIMEOUT_SECONDS", "15"))
    FETCH_SIMULATED_DELAY = float(os.environ.get("FETCH_SIMULATED_DELAY", "0.5"))

    # --- Script turns ---
    MIN_RESPONSE_OPTIONS = 2
    MAX_RESPONSE_OPTIONS = 4

    # --- Customer context ---
    COMPANY_NAME_MAX_LENGTH = 70
    PLACEHOLDER_PHRASES = ("not clearly specified", "placeholder content")
    NO_CUSTOMER_DETAILS = "No specific customer details provided beyond general business info."

    # --- Session ---
    SESSION_MAX_AGE_SECONDS = int(os.environ.get("SESSION_MAX_AGE_SECONDS", "3600"))

    # --- Server ---
    PORT = int(os.environ.get("PORT", "8080"))
