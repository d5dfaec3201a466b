"""
Configuration models and loading.

This module provides Pydantic models for gitsync configuration
with multi-layer merging: defaults < user < project < env vars < CLI.
"""

from .loader import (
    get_project_config_path,
    get_user_config_path,
    get_xdg_config_home,
    load_config,
)
from .models import (
    AuthConfig,
    ExecHookConfig,
    HookRetryConfig,
    HookSpec,
    RetentionConfig,
    SubmodulePolicy,
    SyncConfig,
    SyncTarget,
    WebhookConfig,
    default_link_name,
    split_bind_address,
)

__all__ = [
    # Models
    "AuthConfig",
    "ExecHookConfig",
    "HookRetryConfig",
    "HookSpec",
    "RetentionConfig",
    "SubmodulePolicy",
    "SyncConfig",
    "SyncTarget",
    "WebhookConfig",
    "default_link_name",
    "split_bind_address",
    # Loader functions
    "get_project_config_path",
    "get_user_config_path",
    "get_xdg_config_home",
    "load_config",
]
