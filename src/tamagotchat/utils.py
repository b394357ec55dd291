"""
Utility functions for Tamagotchat.

This module provides:
- Environment variable loading with typed defaults
- Logging configuration with structured JSON output
- Timing utilities for performance measurement
- Request ID generation
- Input sanitization for logs
"""

import os
import re
import sys
import uuid
from datetime import datetime, timezone
from typing import Dict, Any, Optional
from dotenv import load_dotenv
from loguru import logger


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


# Optional environment variables with defaults
DEFAULT_CONFIG: Dict[str, Any] = {
    "LLM_BASE_URL": "http://localhost:11434/v1",
    "LLM_API_KEY": "ollama",
    "GENERATION_MODEL": "deepseek-r1:7b",
    "INTERMEDIATE_MODEL": "deepseek-r1:1.5b",
    "CLASSIFIER_MODEL": "deepseek-r1:7b",
    "REQUEST_TIMEOUT_SECONDS": 60,
    "INITIAL_POINTS": 100,
    "SESSION_TTL_DAYS": 7,
    "USE_INTERMEDIATE_CLASSIFIER": True,
    "USE_TECH_FILTER": True,
    "ADMIN_USERNAME": "admin",
    "ADMIN_PASSWORD": "1234",
    "LOG_LEVEL": "INFO",
}

INT_VARS = {"REQUEST_TIMEOUT_SECONDS", "INITIAL_POINTS", "SESSION_TTL_DAYS"}
BOOL_VARS = {"USE_INTERMEDIATE_CLASSIFIER", "USE_TECH_FILTER"}


def setup_logging(level: Optional[str] = None) -> None:
    """
    Configure structured JSON logging with Loguru.
    """
    # Remove default handler
    logger.remove()

    logger.add(
        sys.stdout,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {name}:{function}:{line} | {message}",
        level=level or os.getenv("LOG_LEVEL", "INFO"),
        serialize=True
    )

    logger.info("Logging configuration complete")


def _parse_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    normalized = str(value).strip().lower()
    if normalized in ("1", "true", "yes", "on"):
        return True
    if normalized in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"not a boolean: {value}")


def load_and_validate_env() -> Dict[str, Any]:
    """
    Load environment variables and apply typed defaults.

    Returns:
        Dict[str, Any]: Configuration dictionary with validated values

    Raises:
        ConfigurationError: If a value is present but unusable (e.g. empty endpoint)
    """
    load_dotenv()

    config = {}

    for var, default in DEFAULT_CONFIG.items():
        value = os.getenv(var, default)
        if var in INT_VARS:
            try:
                config[var] = int(value)
            except (TypeError, ValueError):
                logger.warning(f"Invalid value for {var}: {value}, using default: {default}")
                config[var] = default
        elif var in BOOL_VARS:
            try:
                config[var] = _parse_bool(value)
            except ValueError:
                logger.warning(f"Invalid value for {var}: {value}, using default: {default}")
                config[var] = default
        else:
            config[var] = value

    if not config["LLM_BASE_URL"]:
        raise ConfigurationError("LLM_BASE_URL must not be empty")

    if config["INITIAL_POINTS"] < 0:
        logger.warning("INITIAL_POINTS cannot be negative, using default",
                       value=config["INITIAL_POINTS"])
        config["INITIAL_POINTS"] = DEFAULT_CONFIG["INITIAL_POINTS"]

    logger.info("Environment configuration loaded")
    return config


def generate_request_id() -> str:
    """
    Generate a short request ID.

    Returns:
        str: Request identifier
    """
    return f"req_{uuid.uuid4().hex[:8]}"


def sanitize_for_logging(text: str, max_length: int = 200) -> str:
    """
    Sanitize user input for safe logging by removing/masking sensitive information.

    Args:
        text: Input text to sanitize
        max_length: Maximum length of sanitized text

    Returns:
        str: Sanitized text safe for logging
    """
    if not text:
        return ""

    sensitive_patterns = [
        r'sk-[a-zA-Z0-9]+',  # API keys starting with sk-
        r'Bearer\s+[a-zA-Z0-9]+',  # Bearer tokens
        r'\b[A-Za-z0-9]{32,}\b'  # Long alphanumeric strings (potential tokens)
    ]

    sanitized = text
    for pattern in sensitive_patterns:
        sanitized = re.sub(pattern, '[REDACTED]', sanitized, flags=re.IGNORECASE)

    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length] + "..."

    return sanitized


class Timer:
    """Context manager for timing operations."""

    def __init__(self, operation_name: str = "operation"):
        self.operation_name = operation_name
        self.start_time = None
        self.end_time = None

    def __enter__(self):
        self.start_time = datetime.now(timezone.utc)
        logger.debug(f"Starting {self.operation_name}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.end_time = datetime.now(timezone.utc)
        duration_ms = (self.end_time - self.start_time).total_seconds() * 1000

        if exc_type is None:
            logger.info(f"Completed {self.operation_name}", duration_ms=duration_ms)
        else:
            logger.error(f"Failed {self.operation_name}", duration_ms=duration_ms, error=str(exc_val))


def get_current_timestamp() -> str:
    """
    Get current timestamp in ISO format with UTC timezone.

    Returns:
        str: Current timestamp in ISO format with timezone
    """
    return datetime.now(timezone.utc).isoformat()


# Global configuration instance
_config: Optional[Dict[str, Any]] = None


def get_config() -> Dict[str, Any]:
    """
    Get the global configuration, loading it if not already loaded.

    Returns:
        Dict[str, Any]: Configuration dictionary
    """
    global _config
    if _config is None:
        _config = load_and_validate_env()
    return _config


def reset_config() -> None:
    """Drop the cached configuration so the next get_config() reloads it."""
    global _config
    _config = None


def initialize_app():
    """
    Initialize the application with logging and configuration.
    Call this at app startup.
    """
    config = get_config()
    setup_logging(config["LOG_LEVEL"])

    logger.info(
        "Application initialization complete",
        models={
            "generation": config["GENERATION_MODEL"],
            "intermediate": config["INTERMEDIATE_MODEL"],
            "classifier": config["CLASSIFIER_MODEL"]
        },
        filters={
            "intermediate_classifier": config["USE_INTERMEDIATE_CLASSIFIER"],
            "tech_filter": config["USE_TECH_FILTER"]
        }
    )
