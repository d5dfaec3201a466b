"""
Publication hooks for gitsync.

Hooks are external actions notified after new content is published:

- exec: a local command run inside the published worktree
- webhook: an HTTP request carrying the published hash

Delivery is asynchronous and retried per hook by the HookDispatcher.
"""

from .dispatcher import HookDispatcher, create_hooks
from .exechook import ExecHook
from .models import DeliveryState, Hook, HookRecord, HookResult
from .webhook import Webhook

__all__ = [
    "DeliveryState",
    "ExecHook",
    "Hook",
    "HookDispatcher",
    "HookRecord",
    "HookResult",
    "Webhook",
    "create_hooks",
]
