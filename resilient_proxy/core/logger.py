"""
Structured logging configuration using structlog.
"""
import sys
import logging
from pathlib import Path
from typing import Any, Optional
import structlog
from structlog.types import EventDict, Processor

from resilient_proxy.core.config import Settings, settings


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Add application context to log events."""
    event_dict["app"] = settings.app_name
    event_dict["env"] = settings.app_env
    return event_dict


def obfuscate(value: Optional[str]) -> str:
    """
    Mask a credential for display.
    
    Short values are fully masked, longer ones keep four characters on
    each side.
    """
    if not value:
        return ""
    if len(value) < 16:
        return "*" * len(value)
    return f"{value[:4]}...{value[-4:]}"


def setup_logging(config: Optional[Settings] = None) -> None:
    """
    Configure structured logging with structlog.
    Supports both JSON and text output formats.
    """
    config = config or settings
    
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if config.log_file:
        log_file = Path(config.log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(str(log_file)))
    
    # Configure standard logging
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        handlers=handlers,
        force=True
    )
    
    # Structlog processors
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        add_app_context,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    
    # Add format-specific processors
    if config.log_format == "json":
        processors.extend([
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
        ])
    else:
        processors.extend([
            structlog.processors.ExceptionRenderer(),
            structlog.dev.ConsoleRenderer(colors=config.is_development)
        ])
    
    # Configure structlog
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.
    
    Args:
        name: Logger name (usually __name__)
        
    Returns:
        Configured structured logger
    """
    return structlog.get_logger(name)


# Initialize logging on module import
setup_logging()
