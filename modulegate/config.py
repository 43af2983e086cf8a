"""
Runtime settings for ModuleGate.

Values come from environment variables, optionally loaded from a .env file
in the working directory:

    MODULEGATE_CONTENT_DIR   content directory (default: content)
    MODULEGATE_PROGRESS_DB   progress database (default: ~/.modulegate/progress.db)
    MODULEGATE_LOG_LEVEL     logging level name (default: INFO)
"""

import logging
import os
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, field_validator

from modulegate.classroom.progress import DEFAULT_PROGRESS_DB


class Settings(BaseModel):
    content_dir: Path = Path("content")
    progress_db: Path = DEFAULT_PROGRESS_DB
    log_level: str = "INFO"

    @field_validator('log_level')
    @classmethod
    def known_level(cls, v):
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f'Unknown log level: {v}')
        return level


def load_settings(environ: Optional[Mapping[str, str]] = None, dotenv_path: Optional[Path] = None) -> Settings:
    """
    Build settings from the environment.

    Args:
        environ: Mapping to read instead of os.environ (no .env loading then)
        dotenv_path: Explicit .env file; default is .env in the working directory
    """
    if environ is None:
        load_dotenv(dotenv_path or Path.cwd() / ".env")
        environ = os.environ

    values = {}
    if environ.get("MODULEGATE_CONTENT_DIR"):
        values["content_dir"] = Path(environ["MODULEGATE_CONTENT_DIR"])
    if environ.get("MODULEGATE_PROGRESS_DB"):
        values["progress_db"] = Path(environ["MODULEGATE_PROGRESS_DB"]).expanduser()
    if environ.get("MODULEGATE_LOG_LEVEL"):
        values["log_level"] = environ["MODULEGATE_LOG_LEVEL"]
    return Settings(**values)
