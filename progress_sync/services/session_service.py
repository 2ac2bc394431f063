"""
Session orchestrator.

Drives the lifecycle of one play session: identity resolution, progress
loading, guest-to-authenticated migration, the one-time resume, answer
recording, reset and logout. UI events are applied one at a time; saves are
fire-and-forget through the SaveScheduler so the UI never waits on storage.
"""

import asyncio
import random
from typing import Optional

from progress_sync.config import Settings, get_settings
from progress_sync.errors import RemoteStoreError
from progress_sync.schemas.identity_schemas import AuthUser, Identity
from progress_sync.schemas.progress_schemas import (
    AnsweredQuestion,
    LastLocation,
    ProgressSnapshot,
    ResumeTarget,
    question_key,
)
from progress_sync.schemas.session_schemas import (
    AnswerResult,
    AnswerStatus,
    MergeOutcome,
    MergeReport,
    ModuleStartResult,
    ModuleStartStatus,
    SessionPhase,
    SessionState,
)
from progress_sync.services.catalog_service import ContentCatalog
from progress_sync.services.identity_service import AuthProvider, IdentityResolver, NullAuthProvider
from progress_sync.services.merge_service import fresh_snapshot, merge, sanitize_snapshot, summarize
from progress_sync.services.resume_service import locate, pick_newest, snapshot_location
from progress_sync.services.save_scheduler import AutosaveLoop, SaveJob, SaveScheduler
from progress_sync.services.scoring_service import (
    can_use_power_up,
    consume_power_up,
    is_perfect_attempt,
    refresh_power_ups,
    score_answer,
)
from progress_sync.services.telemetry_service import NullTelemetry, Telemetry, TelemetryEvent
from progress_sync.stores.local_store import LocalSnapshotStore
from progress_sync.stores.remote_store import RemoteSnapshotStore
from progress_sync.utils.common import ensure_utc, utcnow
from progress_sync.utils.logger import configure_logging, set_correlation_id

logger = configure_logging()

LOCAL_SAVE_WARNING = "Progress could not be saved on this device"
REMOTE_SAVE_WARNING = "Progress could not be saved to the cloud; it will be retried"
REMOTE_LOAD_WARNING = "Cloud progress could not be loaded; cloud saves are paused until it is reachable again"

AUDIT_LOGIN_RESUME = "LOGIN_RESUME"
AUDIT_GUEST_MERGE = "GUEST_MERGE"

_BOOTING_PHASES = {
    SessionPhase.BOOTING,
    SessionPhase.RESOLVING_IDENTITY,
    SessionPhase.LOADING_PROGRESS,
    SessionPhase.RESUMING,
    SessionPhase.MIGRATING,
}


class SessionOrchestrator:
    def __init__(
        self,
        *,
        catalog: ContentCatalog,
        local_store: LocalSnapshotStore,
        remote_store: RemoteSnapshotStore,
        identity_resolver: Optional[IdentityResolver] = None,
        auth_provider: Optional[AuthProvider] = None,
        telemetry: Optional[Telemetry] = None,
        settings: Optional[Settings] = None,
        rng: Optional[random.Random] = None,
    ):
        self.settings = settings or get_settings()
        self.catalog = catalog
        self.local_store = local_store
        self.remote_store = remote_store
        self.telemetry = telemetry or NullTelemetry()
        self.identity_resolver = identity_resolver or IdentityResolver(local_store, self.telemetry)
        self.auth_provider = auth_provider or NullAuthProvider()
        self.rng = rng or random.Random()

        self.guest_accessible = frozenset(self.settings.guest_accessible_modules) or frozenset({0})
        self.authenticated_min_unlocked = frozenset(self.settings.authenticated_min_unlocked)

        self.phase = SessionPhase.BOOTING
        self.identity: Optional[Identity] = None
        self.progress: ProgressSnapshot = fresh_snapshot()
        self.resume_target: Optional[ResumeTarget] = None
        self.last_merge: Optional[MergeReport] = None
        self.locate_calls = 0

        self._has_attempted_resume = False
        self._remote_verified = False
        self._last_persisted: Optional[ProgressSnapshot] = None
        self._local_warning: Optional[str] = None
        self._remote_warning: Optional[str] = None
        self._lock = asyncio.Lock()

        self.scheduler = SaveScheduler(self._persist)
        self.autosave = AutosaveLoop(self.settings.autosave_interval_seconds, self._autosave_tick)

    # ----- observable state -----
    @property
    def state(self) -> SessionState:
        return SessionState(
            identity=self.identity,
            progress=self.progress,
            resume_target=self.resume_target,
            is_booting=self.phase in _BOOTING_PHASES,
            phase=self.phase,
            last_merge=self.last_merge,
            persistence_warning=self._local_warning or self._remote_warning,
        )

    # ----- lifecycle -----
    async def on_mount(self, auth_user: Optional[AuthUser] = None) -> SessionState:
        async with self._lock:
            if auth_user is None:
                auth_user = await self._current_auth_user()
            await self._mount(auth_user)
            return self.state

    async def _mount(self, auth_user: Optional[AuthUser]) -> None:
        self.phase = SessionPhase.RESOLVING_IDENTITY
        identity = self.identity_resolver.resolve_identity(auth_user)

        current = self.identity
        if current is not None and current.ephemeral and identity.ephemeral:
            # Each failed resolution mints a new in-memory guest; stay on the first one.
            identity = current
            self.local_store.use_namespace(identity.id)

        if current is not None and identity.id == current.id and self._has_attempted_resume:
            logger.debug("mount without identity change id=%s; resume already applied", identity.id)
            self.phase = SessionPhase.READY
            return

        if current is not None and current.is_guest and identity.is_authenticated:
            await self._migrate(current, identity)
        else:
            await self._activate(identity)

    async def on_login(self, auth_user: AuthUser) -> SessionState:
        if auth_user.is_guest:
            return self.state
        if self.identity is None:
            return await self.on_mount(auth_user)

        async with self._lock:
            if self.identity.is_authenticated and self.identity.id == auth_user.id:
                return self.state
            previous = self.identity
            self.phase = SessionPhase.RESOLVING_IDENTITY
            identity = self.identity_resolver.resolve_identity(auth_user)
            if previous.is_guest:
                await self._migrate(previous, identity)
            else:
                await self._activate(identity)
            return self.state

    async def on_logout(self) -> SessionState:
        async with self._lock:
            await self.scheduler.drain()
            await self.autosave.stop()
            try:
                await self.auth_provider.sign_out()
            except Exception as e:
                logger.warning("sign out failed: %s", e)
            self.identity_resolver.forget_current_user()
            logger.info("logged out id=%s", self.identity.id if self.identity else None)
            self.identity = None
            self.phase = SessionPhase.BOOTING
            await self._mount(None)
            return self.state

    async def on_reset(self) -> SessionState:
        async with self._lock:
            identity = self.identity
            if identity is None:
                return self.state

            self.phase = SessionPhase.RESETTING
            self.scheduler.bump_generation()
            await self.scheduler.drain()

            self.local_store.clear(identity.id)
            self.local_store.clear_last_location(identity.id)
            if identity.is_authenticated:
                result = await self.remote_store.clear(identity.id)
                if not result.success:
                    logger.warning("remote reset failed id=%s error=%s", identity.id, result.error)
                    self._remote_warning = REMOTE_SAVE_WARNING

            unlocked = {min(self.guest_accessible)} if identity.is_guest else self.authenticated_min_unlocked
            self.progress = fresh_snapshot(unlocked)
            self._last_persisted = self.progress
            self.resume_target = ResumeTarget()
            self.telemetry.track(TelemetryEvent.PROGRESS_RESET, {"identity_id": identity.id})
            logger.info("progress reset id=%s", identity.id)
            self.phase = SessionPhase.READY
            return self.state

    async def flush(self) -> None:
        await self.scheduler.drain()

    async def aclose(self) -> None:
        await self.flush()
        await self.autosave.stop()
        await self.remote_store.aclose()
        self.phase = SessionPhase.CLOSED

    async def reconnect_remote(self) -> bool:
        """
        Retry the cloud read that failed when the session loaded.

        On success the newer of the cloud record and the in-memory snapshot is
        kept, and cloud saves resume. Called by the autosave tick.
        """
        async with self._lock:
            identity = self.identity
            if identity is None or not identity.is_authenticated or self.phase != SessionPhase.READY:
                return False
            if self._remote_verified:
                return True
            try:
                remote = await self.remote_store.load(identity.id)
            except RemoteStoreError as e:
                logger.debug("remote still unreachable id=%s: %s", identity.id, e)
                return False

            self._remote_verified = True
            self._remote_warning = None
            snapshot, keep_local = self._newer_of(remote, self.progress)
            if keep_local:
                self._schedule_save("remote-reconnected")
            else:
                self.progress = self._sanitize(snapshot, identity)
                self._last_persisted = self.progress
                self.local_store.save(identity.id, self.progress)
                self.resume_target = ResumeTarget(
                    module_id=self.progress.current_module, question_index=self.progress.current_question
                )
            logger.info("remote reachable again id=%s kept=%s", identity.id, "local" if keep_local else "remote")
            return True

    # ----- gameplay events -----
    async def on_answer_submitted(
        self, module: int, question: int, selected_option: Optional[int]
    ) -> AnswerResult:
        async with self._lock:
            reason = self._answer_rejection(module, question)
            if reason is not None:
                logger.debug("answer rejected module=%s question=%s reason=%s", module, question, reason)
                return AnswerResult(status=AnswerStatus.REJECTED, reason=reason)

            order = self.progress.shuffled_question_order.get(module)
            original_index = order[question] if order and question < len(order) else question
            correct = self.catalog.is_correct(module, original_index, selected_option)

            answered = {
                **self.progress.answered_questions,
                question_key(module, question): AnsweredQuestion(
                    selected_answer=selected_option, was_correct=correct
                ),
            }
            scored = score_answer(self.progress.model_copy(update={"answered_questions": answered}), correct)
            snapshot = scored.snapshot

            if question < self.catalog.question_count(module) - 1:
                snapshot = snapshot.model_copy(update={"current_question": question + 1})
                self._commit(snapshot, ResumeTarget(module_id=module, question_index=question + 1))
                return AnswerResult(
                    status=AnswerStatus.RECORDED,
                    was_correct=correct,
                    points=scored.points,
                    leveled_up=scored.leveled_up,
                )

            snapshot, perfect, auth_prompt = self._complete_module(snapshot, module)
            self._commit(
                snapshot,
                ResumeTarget(module_id=snapshot.current_module, question_index=snapshot.current_question),
            )
            return AnswerResult(
                status=AnswerStatus.MODULE_COMPLETED,
                was_correct=correct,
                points=scored.points,
                leveled_up=scored.leveled_up,
                perfect_module=perfect,
                auth_prompt=auth_prompt,
            )

    async def on_module_started(self, module: int) -> ModuleStartResult:
        async with self._lock:
            if self.phase != SessionPhase.READY or self.identity is None:
                return ModuleStartResult(status=ModuleStartStatus.REJECTED, module_id=module, reason="session not ready")
            if not self.catalog.has_module(module):
                return ModuleStartResult(status=ModuleStartStatus.REJECTED, module_id=module, reason="unknown module")

            if self.identity.is_guest and not self._guest_may_play(module):
                self.telemetry.track(TelemetryEvent.AUTH_MODAL_TRIGGERED, {"module_id": module})
                return ModuleStartResult(
                    status=ModuleStartStatus.AUTH_REQUIRED,
                    module_id=module,
                    reason="sign in to unlock this module",
                )
            if module not in self.progress.unlocked_modules:
                return ModuleStartResult(status=ModuleStartStatus.LOCKED, module_id=module, reason="module is locked")

            prefix = f"{module}-"
            answered = {k: v for k, v in self.progress.answered_questions.items() if not k.startswith(prefix)}
            orders = {
                **self.progress.shuffled_question_order,
                module: self.catalog.shuffled_order(module, self.rng),
            }
            snapshot = self.progress.model_copy(
                update={
                    "answered_questions": answered,
                    "shuffled_question_order": orders,
                    "power_ups": refresh_power_ups(self.progress.power_ups),
                    "current_module": module,
                    "current_question": 0,
                }
            )
            self.telemetry.track(TelemetryEvent.MODULE_STARTED, {"module_id": module})
            self._commit(snapshot, ResumeTarget(module_id=module, question_index=0))
            return ModuleStartResult(status=ModuleStartStatus.STARTED, module_id=module)

    async def on_power_up(self, kind: str) -> AnswerResult:
        """Only "skip" exists: the current question is marked answered (not correct) and the pointer advances."""
        async with self._lock:
            module, question = self.progress.current_module, self.progress.current_question
            reason = self._answer_rejection(module, question)
            if reason is None and kind != "skip":
                reason = f"unknown power-up {kind!r}"
            if reason is None and not can_use_power_up(self.progress.power_ups, kind):
                reason = "no power-ups left"
            if reason is None and question >= self.catalog.question_count(module) - 1:
                reason = "the last question cannot be skipped"
            if reason is not None:
                return AnswerResult(status=AnswerStatus.REJECTED, reason=reason)

            answered = {
                **self.progress.answered_questions,
                question_key(module, question): AnsweredQuestion(selected_answer=None, was_correct=False),
            }
            snapshot = self.progress.model_copy(
                update={
                    "answered_questions": answered,
                    "power_ups": consume_power_up(self.progress.power_ups, kind),
                    "current_question": question + 1,
                    "combo": 0,
                }
            )
            self._commit(snapshot, ResumeTarget(module_id=module, question_index=question + 1))
            return AnswerResult(status=AnswerStatus.RECORDED)

    # ----- internals: loading -----
    async def _current_auth_user(self) -> Optional[AuthUser]:
        try:
            return await self.auth_provider.get_current_authenticated_user()
        except Exception as e:
            logger.warning("auth provider lookup failed, continuing as guest: %s", e)
            return None

    async def _switch_identity(self, identity: Identity) -> None:
        """Invalidate saves scheduled for the previous identity and re-arm the resume guard."""
        self.scheduler.bump_generation()
        await self.scheduler.drain()
        await self.autosave.stop()
        self.identity = identity
        self._has_attempted_resume = False
        self._remote_verified = False
        self._local_warning = None
        self._remote_warning = None
        self.resume_target = None
        set_correlation_id(identity.id)
        self.telemetry.bind_identity(identity.id)

    async def _activate(self, identity: Identity) -> None:
        await self._switch_identity(identity)
        self.phase = SessionPhase.LOADING_PROGRESS

        remote_location: Optional[LastLocation] = None
        push_local = False
        local = None if identity.ephemeral else self.local_store.load(identity.id)

        if identity.is_guest:
            snapshot = local
        else:
            remote = None
            try:
                remote = await self.remote_store.load(identity.id)
                remote_location = await self.remote_store.get_last_location(identity.id)
                self._remote_verified = True
            except RemoteStoreError as e:
                logger.warning("remote load failed id=%s, using local copy: %s", identity.id, e)
                self._remote_warning = REMOTE_LOAD_WARNING
            snapshot, push_local = self._newer_of(remote, local)
            if self._remote_verified:
                await self._audit(identity, AUDIT_LOGIN_RESUME, snapshot, {"source": "remote" if not push_local else "local"})

        if snapshot is None:
            unlocked = {min(self.guest_accessible)} if identity.is_guest else self.authenticated_min_unlocked
            snapshot = fresh_snapshot(unlocked)
        self.progress = self._sanitize(snapshot, identity)
        self._last_persisted = self.progress
        logger.info("progress loaded id=%s kind=%s %s", identity.id, identity.kind.value, summarize(self.progress))

        self._resume(remote_location)
        if push_local:
            # Local copy is newer than the cloud record (an earlier cloud save failed).
            self._schedule_save("local-newer")
        self._enter_ready()

    @staticmethod
    def _newer_of(
        remote: Optional[ProgressSnapshot], local: Optional[ProgressSnapshot]
    ) -> tuple[Optional[ProgressSnapshot], bool]:
        if local is None:
            return remote, False
        if remote is None:
            return local, True
        remote_ts, local_ts = ensure_utc(remote.last_updated), ensure_utc(local.last_updated)
        if local_ts is not None and (remote_ts is None or local_ts > remote_ts):
            return local, True
        return remote, False

    async def _migrate(self, guest: Identity, identity: Identity) -> None:
        self.phase = SessionPhase.MIGRATING
        guest_snapshot = self.progress if self.progress.has_progress() else None
        if guest_snapshot is None and not guest.ephemeral:
            stored = self.local_store.load(guest.id)
            guest_snapshot = stored if stored is not None and stored.has_progress() else None
        guest_location = None if guest.ephemeral else self.local_store.get_last_location(guest.id)

        await self._switch_identity(identity)

        try:
            remote = await self.remote_store.load(identity.id)
            remote_location = await self.remote_store.get_last_location(identity.id)
            self._remote_verified = True
        except RemoteStoreError as e:
            logger.warning("remote load failed during migration id=%s: %s", identity.id, e)
            self.telemetry.track(TelemetryEvent.GUEST_MIGRATION_FAILED, {"error": str(e)})
            self._remote_warning = REMOTE_LOAD_WARNING
            # Guest data stays in place so the next login can migrate it.
            base, _ = self._newer_of(None, self.local_store.load(identity.id))
            snapshot = guest_snapshot or base
            self.last_merge = MergeReport(
                outcome=MergeOutcome.MIGRATED if guest_snapshot is not None else MergeOutcome.FRESH,
                persisted=False,
                reason="remote record unavailable; guest progress kept on this device",
            )
            self.progress = self._sanitize(snapshot or fresh_snapshot(self.authenticated_min_unlocked), identity)
            self._last_persisted = self.progress
            self._resume(None, guest_location)
            self._enter_ready()
            return

        result = merge(
            guest_snapshot,
            remote,
            policy=self.settings.merge_policy,
            authenticated_min_unlocked=self.authenticated_min_unlocked,
            guest_id=guest.id,
        )
        snapshot = self._sanitize(result.snapshot, identity)
        if result.outcome == MergeOutcome.MIGRATED:
            snapshot = snapshot.model_copy(update={"last_updated": utcnow()})

        persisted = True
        if result.outcome == MergeOutcome.MIGRATED:
            saved = await self.remote_store.save(identity.id, snapshot)
            persisted = saved.success
            self.local_store.save(identity.id, snapshot)
            if not persisted:
                logger.warning("migrated progress not persisted id=%s error=%s", identity.id, saved.error)
                self._remote_warning = REMOTE_SAVE_WARNING

        if result.guest_consumed and persisted:
            self.local_store.clear(guest.id)
            self.local_store.clear_last_location(guest.id)
            self.identity_resolver.clear_guest()
            event = TelemetryEvent.GUEST_PROGRESS_DISCARDED if result.guest_discarded else TelemetryEvent.GUEST_PROGRESS_MERGED
            self.telemetry.track(event, {"guest_id": guest.id, "user_id": identity.id})
        elif result.guest_consumed:
            self.telemetry.track(TelemetryEvent.GUEST_MIGRATION_FAILED, {"guest_id": guest.id, "user_id": identity.id})

        if result.outcome == MergeOutcome.MIGRATED and 1 in snapshot.unlocked_modules:
            self.telemetry.track(TelemetryEvent.MODULE2_UNLOCKED_POST_AUTH, {"user_id": identity.id})

        # The guest's pointer only means something when the guest snapshot was kept.
        preferred = remote_location
        if result.outcome == MergeOutcome.MIGRATED and guest_location is not None:
            newest = pick_newest(remote_location, guest_location)
            if newest is guest_location:
                synced = await self.remote_store.set_last_location(
                    identity.id, guest_location.module_id, guest_location.question_index
                )
                if synced.success:
                    self.local_store.set_last_location(
                        identity.id, guest_location.module_id, guest_location.question_index, guest_location.ts
                    )
            preferred = newest

        self.last_merge = MergeReport(
            outcome=result.outcome,
            guest_discarded=result.guest_discarded,
            persisted=persisted,
            reason=result.reason,
        )
        logger.info(
            "login merge id=%s outcome=%s guest_discarded=%s persisted=%s",
            identity.id,
            result.outcome.value,
            result.guest_discarded,
            persisted,
        )
        await self._audit(identity, AUDIT_GUEST_MERGE, snapshot, {"outcome": result.outcome.value, **result.metadata})
        await self._audit(identity, AUDIT_LOGIN_RESUME, snapshot, {"source": "login"})

        self.progress = snapshot
        self._last_persisted = snapshot if persisted else None
        self._resume(preferred)
        self._enter_ready()

    def _resume(self, remote_location: Optional[LastLocation], *extra: Optional[LastLocation]) -> None:
        """Apply the resume pointer at most once per identity."""
        if self._has_attempted_resume or self.identity is None:
            return
        self._has_attempted_resume = True
        self.phase = SessionPhase.RESUMING

        identity = self.identity
        local_location = None if identity.ephemeral else self.local_store.get_last_location(identity.id)
        candidates = [local_location, *extra, snapshot_location(self.progress)]
        if identity.is_authenticated:
            candidates.insert(0, remote_location)
        preferred = pick_newest(*candidates)

        result = locate(identity, self.progress, preferred, self.catalog)
        self.locate_calls += 1
        self.progress = self.progress.model_copy(
            update={
                "unlocked_modules": result.unlocked_modules,
                "current_module": result.target.module_id,
                "current_question": result.target.question_index,
            }
        )
        self.resume_target = result.target
        event = TelemetryEvent.RESUME_LOCATION_APPLIED if preferred is not None else TelemetryEvent.RESUME_LOCATION_MISSING
        self.telemetry.track(
            event,
            {
                "module_id": result.target.module_id,
                "question_index": result.target.question_index,
                "source": result.source,
            },
        )
        logger.info(
            "resume id=%s target=(%s, %s) source=%s widened=%s fell_back=%s",
            identity.id,
            result.target.module_id,
            result.target.question_index,
            result.source,
            result.widened,
            result.fell_back,
        )
        if result.widened:
            self._schedule_save("unlock-widened")

    def _enter_ready(self) -> None:
        self.phase = SessionPhase.READY
        self.autosave.start()

    def _sanitize(self, snapshot: ProgressSnapshot, identity: Identity) -> ProgressSnapshot:
        return sanitize_snapshot(
            snapshot,
            self.catalog,
            identity.kind,
            guest_accessible=self.guest_accessible,
            authenticated_min_unlocked=self.authenticated_min_unlocked,
        )

    async def _audit(self, identity: Identity, event_type: str, snapshot: ProgressSnapshot, payload: dict) -> None:
        if not identity.is_authenticated or not self._remote_verified:
            return
        result = await self.remote_store.record_event(
            identity.id,
            event_type,
            module_id=snapshot.current_module,
            payload={**payload, "summary": summarize(snapshot)},
        )
        if not result.success:
            logger.warning("audit event %s not recorded id=%s: %s", event_type, identity.id, result.error)

    # ----- internals: gameplay -----
    def _guest_may_play(self, module: int) -> bool:
        if not self.settings.deferred_auth:
            return False
        return module in self.guest_accessible

    def _answer_rejection(self, module: int, question: int) -> Optional[str]:
        if self.phase != SessionPhase.READY or self.identity is None:
            return "session not ready"
        if (module, question) != (self.progress.current_module, self.progress.current_question):
            return "not the current question"
        if not self.catalog.has_question(module, question):
            return "unknown question"
        if module not in self.progress.unlocked_modules:
            return "module is locked"
        if self.identity.is_guest and not self._guest_may_play(module):
            return "sign in to unlock this module"
        if len(self.progress.module_answers(module)) >= self.catalog.question_count(module):
            return "module already completed in this attempt"
        if self.progress.is_answered(module, question):
            return "question already answered"
        return None

    def _complete_module(self, snapshot: ProgressSnapshot, module: int) -> tuple[ProgressSnapshot, bool, bool]:
        identity = self.identity
        perfect = is_perfect_attempt(snapshot, module, self.catalog.question_count(module))
        completed = snapshot.completed_modules | {module}
        unlocked = snapshot.unlocked_modules | {module}

        next_module = module + 1
        if self.catalog.has_module(next_module):
            if identity.is_authenticated or next_module in self.guest_accessible:
                unlocked = unlocked | {next_module}

        target = next_module if next_module in unlocked else max(unlocked)
        snapshot = snapshot.model_copy(
            update={
                "completed_modules": completed,
                "unlocked_modules": unlocked,
                "perfect_modules_count": snapshot.perfect_modules_count + (1 if perfect else 0),
                "current_module": target,
                "current_question": 0,
            }
        )
        self.telemetry.track(TelemetryEvent.MODULE_COMPLETED, {"module_id": module, "perfect": perfect})
        logger.info("module completed id=%s module=%s perfect=%s", identity.id, module, perfect)

        auth_prompt = False
        if identity.is_guest and module == max(self.guest_accessible):
            auth_prompt = True
            self.telemetry.track(TelemetryEvent.MODULE1_COMPLETED_GUEST, {"guest_id": identity.id})
            self.telemetry.track(TelemetryEvent.AUTH_PROMPT_SHOWN_AFTER_MODULE1, {"guest_id": identity.id})
        return snapshot, perfect, auth_prompt

    # ----- internals: persistence -----
    def _commit(self, snapshot: ProgressSnapshot, location: Optional[ResumeTarget]) -> None:
        self.progress = snapshot.model_copy(update={"last_updated": utcnow()})
        self._schedule_save("event", location)

    def _schedule_save(self, reason: str, location: Optional[ResumeTarget] = None) -> None:
        if self.identity is None:
            return
        if location is None:
            location = ResumeTarget(
                module_id=self.progress.current_module, question_index=self.progress.current_question
            )
        self.scheduler.schedule(
            SaveJob(
                identity=self.identity,
                snapshot=self.progress,
                location=location,
                generation=self.scheduler.generation,
                reason=reason,
            )
        )

    async def _autosave_tick(self) -> None:
        if self.phase != SessionPhase.READY or self.identity is None:
            return
        if self.identity.is_authenticated and not self._remote_verified:
            await self.reconnect_remote()
        if self.progress == self._last_persisted:
            return
        self._schedule_save("autosave")

    async def _persist(self, job: SaveJob) -> bool:
        identity = job.identity
        if identity.ephemeral:
            self._local_warning = LOCAL_SAVE_WARNING
        else:
            saved = self.local_store.save(identity.id, job.snapshot)
            if saved and job.location is not None:
                self.local_store.set_last_location(
                    identity.id, job.location.module_id, job.location.question_index, job.snapshot.last_updated
                )
            self._local_warning = None if saved else LOCAL_SAVE_WARNING

        if identity.is_authenticated and self._remote_verified:
            if not self.scheduler.is_current(job):
                return False
            result = await self.remote_store.save(identity.id, job.snapshot)
            if result.success and job.location is not None:
                result = await self.remote_store.set_last_location(
                    identity.id, job.location.module_id, job.location.question_index
                )
            if not result.success:
                logger.warning("remote save failed id=%s reason=%s: %s", identity.id, job.reason, result.error)
                self._remote_warning = REMOTE_SAVE_WARNING
                return False
            self._remote_warning = None

        if self.scheduler.is_current(job):
            self._last_persisted = job.snapshot
        return True
