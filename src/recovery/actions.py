"""RecoveryActions — default implementations of the recovery steps.

Every step is an async method named after its RecoveryStep value. A step
returns a small dict describing what it did, or raises StepError with the
ErrorKind that matches the failure. Steps whose work depends on the
deployment (stopping services, deploying, smoke tests) run the shell command
configured under ``recovery.commands`` for that step, and are skipped when
none is configured.
"""

from __future__ import annotations

import asyncio
import os
import shlex
from pathlib import Path
from typing import Any, Protocol

import structlog
from sqlalchemy import create_engine, func, select, table, text
from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import ArgumentError, SQLAlchemyError

from src.core.config import RecoveryConfig
from src.core.types import (
    BackupOperation,
    BackupStatus,
    ErrorKind,
    RecoverySession,
    VerificationStatus,
)
from src.recovery.exceptions import StepError
from src.recovery.procedures import RecoveryStep
from src.store.base import Store

logger = structlog.get_logger(__name__)

StepOutput = dict[str, Any]


class StepRunner(Protocol):
    """Anything that can execute a recovery step by identifier."""

    async def run(self, step: RecoveryStep, session: RecoverySession) -> StepOutput | None: ...


class RecoveryActions:
    """Runs recovery steps against the store, the restore target and the host."""

    def __init__(self, store: Store, config: RecoveryConfig | None = None) -> None:
        self._store = store
        self._config = config or RecoveryConfig()
        self._workspace: Path | None = None
        self._backups: dict[str, BackupOperation | None] = {}

    @property
    def workspace(self) -> Path | None:
        return self._workspace

    async def run(self, step: RecoveryStep, session: RecoverySession) -> StepOutput | None:
        handler = getattr(self, step.value, None)
        if handler is None:
            raise StepError(f"No implementation for step {step.value}", kind=ErrorKind.CONFIGURATION)
        return await handler(session)

    # ── Assessment ──────────────────────────────────────────────

    async def assess_system_damage(self, session: RecoverySession) -> StepOutput:
        """Informational only; never fails the step."""
        assessment: StepOutput = {}
        try:
            await self._store.ping()
            assessment["store"] = {"status": "healthy"}
        except Exception as exc:
            assessment["store"] = {"status": "failed", "error": str(exc)}

        missing = [p for p in self._config.required_paths if not Path(p).exists()]
        assessment["files"] = (
            {"status": "failed", "missing": missing} if missing else {"status": "healthy"}
        )
        logger.info("system_damage_assessed", session_id=session.id, **assessment)
        return assessment

    async def identify_latest_backups(self, session: RecoverySession) -> StepOutput:
        # Never let a failed lookup fall back to an earlier session's picks.
        self._backups = {}
        self._backups = {
            "database": await self._latest_backup("database", verified_only=True),
            "files": await self._latest_backup("files"),
        }
        found = {t: (op.backup_path if op else None) for t, op in self._backups.items()}
        logger.info("latest_backups_identified", session_id=session.id, backups=found)
        return found

    async def prepare_recovery_environment(self, session: RecoverySession) -> StepOutput:
        workspace = Path(self._config.workspace_dir) / session.id
        try:
            await asyncio.to_thread(workspace.mkdir, parents=True, exist_ok=True)
        except OSError as exc:
            raise StepError(f"Cannot create workspace {workspace}: {exc}", kind=ErrorKind.STORAGE) from exc
        self._workspace = workspace
        return {"workspace": str(workspace)}

    # ── Database ────────────────────────────────────────────────

    async def stop_production_services(self, session: RecoverySession) -> StepOutput:
        return await self._run_configured(RecoveryStep.STOP_PRODUCTION_SERVICES)

    async def restore_database(self, session: RecoverySession) -> StepOutput:
        backup = await self._backup_for("database", verified_only=True)
        if backup is None:
            raise StepError("No database backup found for restoration", kind=ErrorKind.NOT_FOUND)
        _ensure_local(backup)

        url = self._database_url()
        args = [
            "pg_restore",
            f"--host={url.host or 'localhost'}",
            f"--port={url.port or 5432}",
            f"--username={url.username or ''}",
            f"--dbname={url.database or ''}",
            "--no-password",
            "--clean",
            "--if-exists",
            backup.backup_path,
        ]
        env = {**os.environ, "PGPASSWORD": url.password or ""}
        await _run_process(args, env=env, kind=ErrorKind.DATABASE)
        logger.info("database_restored", session_id=session.id, backup_id=backup.id)
        return {"backup_id": backup.id, "backup_path": backup.backup_path}

    async def verify_database_integrity(self, session: RecoverySession) -> StepOutput:
        url = self._database_url()
        tables = list(self._config.critical_tables)

        def _count_rows() -> dict[str, int]:
            engine = create_engine(url)
            counts: dict[str, int] = {}
            try:
                with engine.connect() as conn:
                    for name in tables:
                        try:
                            counts[name] = conn.execute(
                                select(func.count()).select_from(table(name)),
                            ).scalar_one()
                        except SQLAlchemyError as exc:
                            raise StepError(
                                f"Table verification failed for {name}: {exc}",
                                kind=ErrorKind.INTEGRITY,
                            ) from exc
            finally:
                engine.dispose()
            return counts

        try:
            counts = await asyncio.to_thread(_count_rows)
        except SQLAlchemyError as exc:
            raise StepError(f"Database unreachable: {exc}", kind=ErrorKind.DATABASE) from exc
        logger.info("database_integrity_verified", session_id=session.id, tables=counts)
        return {"tables": counts}

    async def update_database_connections(self, session: RecoverySession) -> StepOutput:
        return await self._run_configured(RecoveryStep.UPDATE_DATABASE_CONNECTIONS)

    # ── Files ───────────────────────────────────────────────────

    async def restore_files(self, session: RecoverySession) -> StepOutput:
        backup = await self._backup_for("files")
        if backup is None:
            logger.warning("file_backup_missing", session_id=session.id)
            return {"skipped": True}
        _ensure_local(backup)
        target = self._config.files_target_dir
        await _run_process(
            ["tar", "-xzf", backup.backup_path, "-C", target], kind=ErrorKind.STORAGE,
        )
        logger.info("files_restored", session_id=session.id, backup_id=backup.id, target=target)
        return {"backup_id": backup.id, "target": target}

    async def verify_file_integrity(self, session: RecoverySession) -> StepOutput:
        missing = [p for p in self._config.required_paths if not Path(p).exists()]
        if missing:
            raise StepError(f"Missing required paths: {', '.join(missing)}", kind=ErrorKind.INTEGRITY)
        return {"checked": len(self._config.required_paths)}

    async def update_file_permissions(self, session: RecoverySession) -> StepOutput:
        return await self._run_configured(RecoveryStep.UPDATE_FILE_PERMISSIONS)

    # ── Application ─────────────────────────────────────────────

    async def deploy_application(self, session: RecoverySession) -> StepOutput:
        return await self._run_configured(RecoveryStep.DEPLOY_APPLICATION)

    async def update_configuration(self, session: RecoverySession) -> StepOutput:
        return await self._run_configured(RecoveryStep.UPDATE_CONFIGURATION)

    async def restart_services(self, session: RecoverySession) -> StepOutput:
        return await self._run_configured(RecoveryStep.RESTART_SERVICES)

    async def verify_application_health(self, session: RecoverySession) -> StepOutput:
        return await self._run_configured(RecoveryStep.VERIFY_APPLICATION_HEALTH)

    # ── Verification ────────────────────────────────────────────

    async def run_health_checks(self, session: RecoverySession) -> StepOutput:
        try:
            await self._store.ping()
        except Exception as exc:
            raise StepError(f"Health check failed: store unreachable: {exc}", kind=ErrorKind.DATABASE) from exc

        if self._config.database_url.get_secret_value():
            url = self._database_url()

            def _select_one() -> None:
                engine = create_engine(url)
                try:
                    with engine.connect() as conn:
                        conn.execute(text("SELECT 1"))
                finally:
                    engine.dispose()

            try:
                await asyncio.to_thread(_select_one)
            except SQLAlchemyError as exc:
                raise StepError(f"Health check failed: restored database: {exc}", kind=ErrorKind.DATABASE) from exc

        missing = [p for p in self._config.required_paths if not Path(p).exists()]
        if missing:
            raise StepError(f"Health check failed: file system access: {missing[0]}", kind=ErrorKind.STORAGE)
        return {"healthy": True}

    async def validate_critical_functions(self, session: RecoverySession) -> StepOutput:
        return await self._run_configured(RecoveryStep.VALIDATE_CRITICAL_FUNCTIONS)

    async def perform_smoke_tests(self, session: RecoverySession) -> StepOutput:
        return await self._run_configured(RecoveryStep.PERFORM_SMOKE_TESTS)

    async def notify_recovery_complete(self, session: RecoverySession) -> StepOutput:
        return await self._run_configured(RecoveryStep.NOTIFY_RECOVERY_COMPLETE)

    # ── Helpers ─────────────────────────────────────────────────

    async def _latest_backup(
        self, backup_type: str, verified_only: bool = False,
    ) -> BackupOperation | None:
        try:
            operations = await self._store.list_backup_operations()
        except Exception as exc:
            raise StepError(f"Backup catalog unavailable: {exc}", kind=ErrorKind.DATABASE) from exc
        for op in operations:
            if op.backup_type != backup_type or op.status != BackupStatus.COMPLETED:
                continue
            if verified_only and op.verification_status != VerificationStatus.PASSED:
                continue
            return op
        return None

    async def _backup_for(
        self, backup_type: str, verified_only: bool = False,
    ) -> BackupOperation | None:
        if backup_type in self._backups:
            return self._backups[backup_type]
        return await self._latest_backup(backup_type, verified_only=verified_only)

    def _database_url(self) -> URL:
        raw = self._config.database_url.get_secret_value()
        if not raw:
            raise StepError("recovery.database_url is not configured", kind=ErrorKind.CONFIGURATION)
        try:
            return make_url(raw)
        except ArgumentError as exc:
            raise StepError(f"Invalid recovery.database_url: {exc}", kind=ErrorKind.CONFIGURATION) from exc

    async def _run_configured(self, step: RecoveryStep) -> StepOutput:
        command = self._config.commands.get(step.value)
        if not command:
            logger.info("recovery_step_skipped", step=step.value, reason="no_command_configured")
            return {"skipped": True}
        output = await _run_process(shlex.split(command), kind=ErrorKind.EXTERNAL)
        return {"command": command, "output": output[-500:]}


def _ensure_local(backup: BackupOperation) -> None:
    if "://" in backup.backup_path:
        raise StepError(
            f"Backup {backup.id} is remote ({backup.backup_path}); fetch it locally first",
            kind=ErrorKind.CONFIGURATION,
        )
    if not Path(backup.backup_path).exists():
        raise StepError(f"Backup file not found: {backup.backup_path}", kind=ErrorKind.NOT_FOUND)


async def _run_process(
    args: list[str],
    env: dict[str, str] | None = None,
    kind: ErrorKind = ErrorKind.EXTERNAL,
) -> str:
    """Run *args* to completion and return stdout. Non-zero exit raises StepError."""
    try:
        process = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=env,
        )
    except FileNotFoundError as exc:
        raise StepError(f"Command not found: {args[0]}", kind=ErrorKind.CONFIGURATION) from exc

    try:
        stdout, stderr = await process.communicate()
    except asyncio.CancelledError:
        process.kill()
        await process.wait()
        raise

    if process.returncode != 0:
        detail = stderr.decode(errors="replace").strip()[-300:]
        raise StepError(f"{args[0]} exited with {process.returncode}: {detail}", kind=kind)
    return stdout.decode(errors="replace")
