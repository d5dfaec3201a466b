"""
Wiring of a SyncConfig into a ready-to-run sync loop.

The CLI (or any other caller) builds a SyncRuntime from validated
configuration and gets back every collaborator already connected: content
store, worktree store, publication point, hook dispatcher, engine,
scheduler, metrics and the optional HTTP endpoint.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from types import TracebackType

import httpx

from gitsync.core.config.models import SyncConfig
from gitsync.core.failures import FailureTracker
from gitsync.core.hooks.dispatcher import HookDispatcher, create_hooks
from gitsync.core.http.app import create_app
from gitsync.core.http.server import HttpServer
from gitsync.core.publish.link import PublicationPoint
from gitsync.core.store.adapter import ContentStore, use_git_executable
from gitsync.core.store.credentials import CredentialResolver, resolver_for
from gitsync.core.sync.engine import SyncEngine
from gitsync.core.sync.metrics import SyncMetrics
from gitsync.core.sync.models import RunResult
from gitsync.core.sync.scheduler import SyncScheduler
from gitsync.core.worktree.manager import WorktreeStore


@dataclass
class SyncRuntime:
    """All collaborators of one sync process."""

    config: SyncConfig
    content_store: ContentStore
    worktrees: WorktreeStore
    publication: PublicationPoint
    dispatcher: HookDispatcher
    engine: SyncEngine
    scheduler: SyncScheduler
    metrics: SyncMetrics
    http_server: HttpServer | None = None

    def run(self) -> RunResult:
        """Start the engine and dispatcher and run the scheduler to completion."""
        with self:
            self.engine.start()
            return self.scheduler.run()

    def __enter__(self) -> SyncRuntime:
        self.dispatcher.start()
        if self.http_server is not None:
            try:
                self.http_server.start()
            except BaseException:
                self.dispatcher.stop()
                raise
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self.http_server is not None:
            self.http_server.stop()
        self.dispatcher.stop()
        self.engine.close()


def build_runtime(
    config: SyncConfig,
    *,
    stop_event: threading.Event | None = None,
    credentials: CredentialResolver | None = None,
    http_client: httpx.Client | None = None,
) -> SyncRuntime:
    """
    Build a SyncRuntime from configuration.

    Args:
        config: Validated configuration
        stop_event: Shutdown event shared with signal handlers
        credentials: Credential resolver (defaults to the configured auth profile)
        http_client: HTTP client for webhooks

    Returns:
        SyncRuntime ready to run

    Raises:
        GitError: If the configured git executable is unusable
    """
    use_git_executable(config.git_executable)
    content_store = ContentStore(
        config.root,
        config.target.repo,
        credentials=credentials or resolver_for(config.auth),
        cookie_file=config.cookie_file,
    )
    worktrees = WorktreeStore(
        content_store,
        submodules=config.target.submodules,
        retention=config.retention,
        permissions=config.change_permissions,
    )
    publication = PublicationPoint(config.root, config.link_name)
    dispatcher = HookDispatcher(
        create_hooks(config.hooks, publication.link_path, http_client),
        config.hook_retry,
    )
    engine = SyncEngine(config.target, content_store, worktrees, publication, dispatcher)
    metrics = SyncMetrics()
    scheduler = SyncScheduler(
        engine,
        FailureTracker(config.max_failures),
        period=config.period_seconds,
        timeout=config.timeout_seconds,
        one_time=config.one_time,
        dispatcher=dispatcher,
        hook_wait_timeout=config.timeout_seconds,
        stop_event=stop_event,
        metrics=metrics,
    )

    http_server = None
    if config.http_address is not None:
        host, port = config.http_address
        app = create_app(metrics if config.http_metrics else None)
        http_server = HttpServer(app, host, port)

    return SyncRuntime(
        config=config,
        content_store=content_store,
        worktrees=worktrees,
        publication=publication,
        dispatcher=dispatcher,
        engine=engine,
        scheduler=scheduler,
        metrics=metrics,
        http_server=http_server,
    )
