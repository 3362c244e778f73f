"""Root logging setup shared by the CLI and embedding applications.

Library modules only ever call ``logging.getLogger(__name__)``; whoever owns
the process decides where records go by calling :meth:`LoggingFactory.initialize`
(or :meth:`LoggingFactory.initialize_from_config`) once at startup::

    LoggingFactory.initialize_from_config(get_config(), handlers=[rich_handler])
    LoggingFactory.configure_verbose(args.verbose)
"""
from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FILE_NAME = "engine.log"

# Loggers that follow the verbosity switch.
ENGINE_LOGGERS = ("src", "src.orchestration", "src.orchestration.workflow_engine")


class LoggingFactory:
    """One-shot configuration of the root logger.

    Repeated ``initialize`` calls are no-ops, so tests and embedding code can
    call it freely.
    """

    _initialized = False
    _log_dir: Optional[Path] = None

    @classmethod
    def initialize(
        cls,
        log_dir: Optional[Path] = None,
        level: int = logging.INFO,
        format_string: Optional[str] = None,
        handlers: Optional[List[logging.Handler]] = None,
    ) -> None:
        """Attach handlers to the root logger the first time it is called.

        Args:
            log_dir: Where ``engine.log`` goes; created if missing. None disables
                     file output.
            level: Root logger level.
            format_string: Record format; defaults to ``DEFAULT_FORMAT``.
            handlers: Console handlers to use in place of a plain StreamHandler,
                      such as the RichHandler built by the CLI.
        """
        if cls._initialized:
            return

        sinks: List[logging.Handler] = list(handlers or [logging.StreamHandler()])
        if log_dir is not None:
            log_dir.mkdir(parents=True, exist_ok=True)
            sinks.append(logging.FileHandler(log_dir / LOG_FILE_NAME))
            cls._log_dir = log_dir

        logging.basicConfig(level=level, format=format_string or DEFAULT_FORMAT, handlers=sinks)
        cls._initialized = True

    @classmethod
    def initialize_from_config(cls, config, handlers: Optional[List[logging.Handler]] = None) -> None:
        """Initialize from a :class:`src.config.Config`; unknown level names mean INFO."""
        cls.initialize(
            log_dir=config.log_dir if config.log_to_file else None,
            level=getattr(logging, config.log_level, logging.INFO),
            format_string=config.log_format,
            handlers=handlers,
        )

    @classmethod
    def get_logger(cls, name: str) -> logging.Logger:
        """Return ``logging.getLogger(name)``, setting up defaults if nobody has yet."""
        if not cls._initialized:
            cls.initialize()
        return logging.getLogger(name)

    @classmethod
    def set_level(cls, name: str, level: int) -> None:
        logging.getLogger(name).setLevel(level)

    @classmethod
    def configure_verbose(cls, verbose: bool = False) -> None:
        """Put the root and engine loggers at DEBUG when verbose, INFO otherwise."""
        level = logging.DEBUG if verbose else logging.INFO
        for name in ("",) + ENGINE_LOGGERS:
            cls.set_level(name, level)


def get_logger(name: str) -> logging.Logger:
    return LoggingFactory.get_logger(name)
