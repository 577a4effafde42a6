"""Dev mode session: the watch → build → isolate → reload pipeline.

Lifecycle
---------
``activate()`` snapshots the tracked tree, tries to move onto a canary
branch and starts the watcher. Every tracked change pokes the
debouncer; when the quiet period elapses the session builds. A
successful build is auto-committed to the canary branch (if any) and
the operator is asked whether to reload now, later, or inspect first.
A failed build is reported with an offer to view output or roll back,
and the session goes back to watching with the edits left in place.

Guarantees
----------
* At most one build runs at a time. A trigger that fires mid-build is
  remembered and re-armed once the build (and its reload decision)
  finishes, giving exactly one follow-up build.
* A failed build is never followed by a restart. Manual reloads are
  refused until a later build succeeds.
* ``deactivate()`` cancels any pending trigger but lets an in-flight
  build finish; its outcome is logged and no prompt is shown.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from datetime import datetime, timezone
from typing import Any

from devmode.shared.services.source_context import build_source_context

from .build_runner import BuildRunner
from .config import DevModeConfig
from .errors import BuildError, DevModeError, FileSystemError, ReloadError
from .host import HostSurface
from .isolation import IsolationBranchManager
from .lifecycle import is_active_state, validate_transition
from .models import BuildOutcome, ReloadChoice, SaveHook, SessionState, Snapshot
from .output import OutputChannel
from .reload import ReloadCoordinator
from .snapshot_store import SnapshotStore
from .tracked_files import TrackedFileSet
from .vcs import GitClient
from .watcher import ChangeWatcher, Debouncer

logger = logging.getLogger(__name__)

# (tracked file set, on_change callback) -> object with start() / async stop()
WatcherFactory = Callable[[TrackedFileSet, Callable[[], None]], Any]


class DevModeSession:
    """Owns activation state and sequences the self-modification pipeline."""

    def __init__(
        self,
        config: DevModeConfig,
        host: HostSurface,
        *,
        git: GitClient | None = None,
        snapshot_store: SnapshotStore | None = None,
        build_runner: BuildRunner | None = None,
        isolation: IsolationBranchManager | None = None,
        watcher_factory: WatcherFactory | None = None,
    ) -> None:
        self._config = config
        self._host = host
        self.output = OutputChannel("Dev Mode", sink=host.append_output)

        root = config.root_path
        self._tracked = TrackedFileSet.from_config(config)
        self._git = git or GitClient(root)
        self._store = snapshot_store or SnapshotStore(
            self._tracked,
            self._git,
            prune_new_files=config.restore_prunes_new_files,
        )
        self._isolation = isolation or IsolationBranchManager(
            self._git,
            self.output,
            branch_prefix=config.branch_prefix,
            stage_path=config.source_dir,
        )
        self._builder = build_runner or BuildRunner(
            config.build_command,
            root,
            self.output,
            search_paths=config.extra_search_paths,
            shell_path_timeout=config.shell_path_timeout_seconds,
        )
        self._reloader = ReloadCoordinator(host, self.output)
        self._debouncer = Debouncer(
            config.quiet_period_seconds, self._on_trigger, name="devmode-build",
        )
        self._watcher_factory: WatcherFactory = watcher_factory or ChangeWatcher
        self._watcher: Any = None

        self._state = SessionState.INACTIVE
        self._snapshots: list[Snapshot] = []
        self._isolation_branch: str | None = None
        self._lifecycle_lock = asyncio.Lock()
        self._cycle_lock = asyncio.Lock()
        # Held only while the build subprocess runs (cycle or rollback).
        self._build_gate = asyncio.Lock()
        self._rerun_requested = False
        self._last_build_failed = False
        self._last_outcome: BuildOutcome | None = None
        # Bumped on every activation/deactivation so late results from a
        # previous activation can be recognised and dropped.
        self._generation = 0
        self._background: set[asyncio.Task] = set()

    # ── Introspection ─────────────────────────────────────────────

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_active(self) -> bool:
        return is_active_state(self._state)

    @property
    def isolation_branch(self) -> str | None:
        return self._isolation_branch

    @property
    def snapshots(self) -> tuple[Snapshot, ...]:
        return tuple(self._snapshots)

    @property
    def has_pending_trigger(self) -> bool:
        return self._debouncer.pending

    @property
    def last_outcome(self) -> BuildOutcome | None:
        return self._last_outcome

    def set_save_hook(self, hook: SaveHook | None) -> None:
        """Register the callback run before every reload attempt."""
        self._reloader.save_hook = hook

    def _transition(self, target: SessionState) -> None:
        validate_transition(self._state, target)
        logger.debug("Dev mode state %s -> %s", self._state.value, target.value)
        self._state = target

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation and self.is_active

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        task.add_done_callback(self._log_background_failure)
        return task

    def _log_background_failure(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            self.output.error(f"{task.get_name()} failed: {exc}")
            logger.error("Dev mode task %s failed", task.get_name(), exc_info=exc)

    async def wait_idle(self) -> None:
        """Wait until fired triggers and follow-up prompts have finished."""
        while True:
            await self._debouncer.drain()
            pending = [t for t in self._background if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    # ── Activation ────────────────────────────────────────────────

    async def activate(self) -> None:
        """Enable dev mode. Calling it while active does nothing.

        Raises FileSystemError if the activation snapshot cannot be
        taken; the session then stays inactive.
        """
        async with self._lifecycle_lock:
            if self.is_active:
                self.output.append_line("Dev Mode already active")
                return

            self.output.append_line("Enabling Dev Mode...")
            snapshot = await self._store.capture("activation")
            self._snapshots.append(snapshot)
            self.output.append_line(f"Snapshot created: {snapshot.file_count} files")

            self._isolation_branch = await self._isolation.create_branch()

            self._watcher = self._watcher_factory(self._tracked, self.on_change)
            self._watcher.start()
            self.output.append_line("Started watching source files")

            self._generation += 1
            self._rerun_requested = False
            self._last_build_failed = False
            self._transition(SessionState.WATCHING)

        self.output.append_line("Dev Mode enabled - source is now self-modifiable")
        await self._host.notify("Dev Mode enabled. The assistant can now modify its own source code.")

    async def deactivate(self, rollback: bool = False) -> None:
        """Disable dev mode, optionally rolling back to the latest snapshot.

        A build already running is allowed to finish but its result is
        ignored. Raises FileSystemError if the rollback cannot write a
        file; the session is inactive either way.
        """
        async with self._lifecycle_lock:
            if not self.is_active:
                return

            self.output.append_line("Disabling Dev Mode...")
            self._generation += 1
            if self._debouncer.cancel():
                self.output.append_line("Cancelled pending build")
            self._rerun_requested = False
            if self._watcher is not None:
                await self._watcher.stop()
                self._watcher = None
                self.output.append_line("Stopped watching source files")

            self._transition(SessionState.INACTIVE)
            self._isolation_branch = None

            try:
                if rollback and self._snapshots:
                    await self._rollback(self._snapshots[-1])
            finally:
                self.output.append_line("Dev Mode disabled")
                await self._host.notify("Dev Mode disabled")

    async def checkpoint(self, description: str = "") -> Snapshot:
        """Capture an additional snapshot while active."""
        if not self.is_active:
            raise DevModeError("Dev Mode is not active")
        snapshot = await self._store.capture(description or "checkpoint")
        self._snapshots.append(snapshot)
        self.output.append_line(
            f"Checkpoint created: {snapshot.file_count} files"
            + (f" ({description})" if description else "")
        )
        return snapshot

    async def _rollback(self, snapshot: Snapshot) -> None:
        self.output.append_line(f"Rolling back to snapshot {snapshot.summary()}...")
        try:
            await self._store.restore(snapshot)
        except FileSystemError as exc:
            self.output.error(f"Rollback failed: {exc}")
            logger.error("Rollback to %s failed: %s", snapshot.summary(), exc)
            await self._host.notify(f"Rollback failed: {exc}", severity="error")
            raise
        try:
            async with self._build_gate:
                self._last_outcome = await self._builder.build()
        except BuildError as exc:
            self._last_outcome = exc.outcome
            self._last_build_failed = True
            self.output.error(f"Rebuild after rollback failed: {exc}")
            await self._host.notify(
                "Rolled back, but the rebuild failed. See Dev Mode output.",
                severity="error",
            )
            return
        self._last_build_failed = False
        self.output.append_line("Rollback complete")
        await self._host.notify("Rolled back to previous snapshot")

    # ── Change handling ───────────────────────────────────────────

    def on_change(self) -> None:
        """Entry point for every create/modify/delete notification."""
        if not self.is_active:
            return
        self.output.append_line("Source file changed, scheduling build...")
        self._debouncer.poke()

    async def _on_trigger(self) -> None:
        if not self.is_active:
            return
        if self._cycle_lock.locked():
            self._rerun_requested = True
            self.output.append_line("Build already running; follow-up build queued")
            return

        generation = self._generation
        await self._exclusive(lambda: self._run_cycle(generation))

    async def _exclusive(self, step: Callable[[], Coroutine[Any, Any, Any]]) -> Any:
        """Run *step* holding the cycle lock, then re-arm a queued build."""
        try:
            async with self._cycle_lock:
                return await step()
        finally:
            if self._rerun_requested and self.is_active and not self._cycle_lock.locked():
                self._rerun_requested = False
                self._debouncer.poke()

    async def _run_cycle(self, generation: int) -> None:
        if not self._is_current(generation) or self._state is not SessionState.WATCHING:
            return
        self._transition(SessionState.BUILDING)
        self.output.append_line("Building...")
        try:
            async with self._build_gate:
                outcome = await self._builder.build()
        except BuildError as exc:
            await self._handle_build_failure(exc.outcome, str(exc), generation)
            return

        self._last_outcome = outcome
        self._last_build_failed = False
        if not self._is_current(generation):
            self.output.append_line("Build finished after Dev Mode was disabled; not reloading")
            return

        self.output.append_line("Build successful")
        if self._isolation_branch:
            stamp = datetime.now(timezone.utc).isoformat()
            await self._isolation.commit(f"{self._config.commit_message_prefix}: {stamp}")

        self._transition(SessionState.AWAITING_RELOAD_DECISION)
        choice = await self._host.choose(
            "Build succeeded! Reload to apply changes?",
            [
                ReloadChoice.RELOAD_NOW.value,
                ReloadChoice.RELOAD_LATER.value,
                ReloadChoice.TEST_FIRST.value,
            ],
        )
        if not self._is_current(generation):
            return

        if choice == ReloadChoice.RELOAD_NOW.value:
            await self._reload()
        elif choice == ReloadChoice.TEST_FIRST.value:
            self._transition(SessionState.WATCHING)
            self._spawn(self._inspect_prompt(generation), "devmode-inspect-prompt")
        else:
            self.output.append_line("Reload postponed")
            self._transition(SessionState.WATCHING)

    async def _handle_build_failure(
        self, outcome: BuildOutcome, message: str, generation: int,
    ) -> None:
        self._last_outcome = outcome
        self._last_build_failed = True
        self.output.error(f"Build failed: {message}")
        if not self._is_current(generation):
            return
        self._transition(SessionState.BUILD_FAILED)
        self._transition(SessionState.WATCHING)
        self._spawn(self._failure_prompt(generation), "devmode-failure-prompt")

    async def _failure_prompt(self, generation: int) -> None:
        choice = await self._host.choose(
            "Build failed. Changes NOT applied.",
            [ReloadChoice.VIEW_OUTPUT.value, ReloadChoice.ROLLBACK.value],
            severity="error",
        )
        if choice == ReloadChoice.VIEW_OUTPUT.value:
            await self._host.show_output()
        elif choice == ReloadChoice.ROLLBACK.value and self._is_current(generation):
            await self.deactivate(rollback=True)

    async def _inspect_prompt(self, generation: int) -> None:
        choice = await self._host.choose(
            "Review changes with \"git diff\", then reload when ready.",
            [ReloadChoice.SHOW_DIFF.value, ReloadChoice.RELOAD_NOW.value],
        )
        if not self._is_current(generation):
            return
        if choice == ReloadChoice.SHOW_DIFF.value:
            await self._host.open_diff()
        elif choice == ReloadChoice.RELOAD_NOW.value:
            await self._reload_if_safe()

    # ── Reload ────────────────────────────────────────────────────

    async def request_reload(self) -> bool:
        """Manually ask the operator to reload into the current build.

        Returns True if a restart was requested.
        """
        if self._state not in (SessionState.INACTIVE, SessionState.WATCHING):
            self.output.append_line(f"Reload not possible while {self._state.value}")
            return False
        if self._last_build_failed:
            self.output.warning("Last build failed; reload refused until a build succeeds")
            await self._host.notify(
                "The last build failed. Fix it before reloading.", severity="warning",
            )
            return False

        choice = await self._host.choose(
            "Code updated! Reload to apply changes?",
            [ReloadChoice.RELOAD_NOW.value, ReloadChoice.RELOAD_LATER.value],
        )
        if choice == ReloadChoice.RELOAD_NOW.value:
            return await self._reload_if_safe()

        self.output.append_line("User chose to reload later")
        self._spawn(self._reminder_prompt(), "devmode-reload-reminder")
        return False

    async def _reminder_prompt(self) -> None:
        choice = await self._host.choose(
            "Reload when ready to apply changes",
            [ReloadChoice.RELOAD_NOW.value],
        )
        if choice == ReloadChoice.RELOAD_NOW.value:
            await self._reload_if_safe()

    async def _reload_if_safe(self) -> bool:
        """Reload from outside a build cycle, waiting out any running build."""
        return await self._exclusive(self._checked_reload)

    async def _checked_reload(self) -> bool:
        # Re-checked here: prompts can be answered long after they were shown.
        if self._state not in (SessionState.INACTIVE, SessionState.WATCHING):
            self.output.append_line(f"Reload skipped: session is {self._state.value}")
            return False
        if self._last_build_failed:
            self.output.warning("Reload skipped: the latest build failed")
            return False
        return await self._reload()

    async def _reload(self) -> bool:
        tracked = self.is_active
        if tracked:
            self._transition(SessionState.RELOADING)
        try:
            return await self._reloader.reload()
        except ReloadError as exc:
            self.output.error(str(exc))
            await self._host.notify(str(exc), severity="error")
            return False
        finally:
            if tracked and self._state is SessionState.RELOADING:
                self._transition(SessionState.WATCHING)

    # ── Misc ──────────────────────────────────────────────────────

    def source_context(self) -> str:
        """Markdown digest of the tracked source, for agent prompts."""
        return build_source_context(self._tracked, self._config.key_files)

    async def dispose(self) -> None:
        """Tear down: stop watching, drop pending work, close output."""
        self._generation += 1
        self._debouncer.cancel()
        if self._watcher is not None:
            await self._watcher.stop()
            self._watcher = None
        for task in list(self._background):
            task.cancel()
        self._state = SessionState.INACTIVE
        self._isolation_branch = None
        self._snapshots.clear()
        self._rerun_requested = False
        self.output.close()
