from __future__ import annotations

import os
from typing import Optional

import yaml
from pydantic import BaseModel


class PreservationConfig(BaseModel):
    """Connection settings for the preservation version registry."""

    url: Optional[str] = None
    token: Optional[str] = None
    timeout: float = 10.0


class VersionServiceConfig(BaseModel):
    """Policy switches for the version lifecycle."""

    # Check the local head against preservation when opening.
    sync_with_preservation: bool = True


class ObjversionConfig(BaseModel):
    """Top-level configuration model."""

    database_url: Optional[str] = None
    workflow_database_url: Optional[str] = None
    preservation: PreservationConfig = PreservationConfig()
    version_service: VersionServiceConfig = VersionServiceConfig()
    log_level: str = "INFO"


def load_config(path: Optional[str] = None) -> ObjversionConfig:
    """Load configuration from YAML file.

    Args:
        path: Optional path to config file. Falls back to OBJVERSION_CONFIG env
            variable or 'config.yaml' in the current directory.
    """

    config_path = path or os.getenv("OBJVERSION_CONFIG", "config.yaml")
    if os.path.exists(config_path):
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
        config = ObjversionConfig(**data)
    else:
        config = ObjversionConfig()

    env_db_url = os.getenv("OBJVERSION_DATABASE_URL")
    if env_db_url:
        config.database_url = env_db_url
    env_wf_url = os.getenv("OBJVERSION_WORKFLOW_DATABASE_URL")
    if env_wf_url:
        config.workflow_database_url = env_wf_url
    env_preservation_url = os.getenv("OBJVERSION_PRESERVATION_URL")
    if env_preservation_url:
        config.preservation.url = env_preservation_url
    return config
