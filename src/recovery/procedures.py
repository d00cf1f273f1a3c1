"""Recovery phases, steps and the static procedure catalog."""

from __future__ import annotations

from enum import StrEnum

from src.core.types import RecoveryProcedure


class RecoveryPhase(StrEnum):
    """Phases run strictly in declaration order."""

    ASSESSMENT = "assessment"
    DATABASE_RECOVERY = "database_recovery"
    FILE_RECOVERY = "file_recovery"
    APPLICATION_RECOVERY = "application_recovery"
    VERIFICATION = "verification"


class RecoveryStep(StrEnum):
    # assessment
    ASSESS_SYSTEM_DAMAGE = "assess_system_damage"
    IDENTIFY_LATEST_BACKUPS = "identify_latest_backups"
    PREPARE_RECOVERY_ENVIRONMENT = "prepare_recovery_environment"
    # database_recovery
    STOP_PRODUCTION_SERVICES = "stop_production_services"
    RESTORE_DATABASE = "restore_database"
    VERIFY_DATABASE_INTEGRITY = "verify_database_integrity"
    UPDATE_DATABASE_CONNECTIONS = "update_database_connections"
    # file_recovery
    RESTORE_FILES = "restore_files"
    VERIFY_FILE_INTEGRITY = "verify_file_integrity"
    UPDATE_FILE_PERMISSIONS = "update_file_permissions"
    # application_recovery
    DEPLOY_APPLICATION = "deploy_application"
    UPDATE_CONFIGURATION = "update_configuration"
    RESTART_SERVICES = "restart_services"
    VERIFY_APPLICATION_HEALTH = "verify_application_health"
    # verification
    RUN_HEALTH_CHECKS = "run_health_checks"
    VALIDATE_CRITICAL_FUNCTIONS = "validate_critical_functions"
    PERFORM_SMOKE_TESTS = "perform_smoke_tests"
    NOTIFY_RECOVERY_COMPLETE = "notify_recovery_complete"


PHASES: dict[RecoveryPhase, tuple[RecoveryStep, ...]] = {
    RecoveryPhase.ASSESSMENT: (
        RecoveryStep.ASSESS_SYSTEM_DAMAGE,
        RecoveryStep.IDENTIFY_LATEST_BACKUPS,
        RecoveryStep.PREPARE_RECOVERY_ENVIRONMENT,
    ),
    RecoveryPhase.DATABASE_RECOVERY: (
        RecoveryStep.STOP_PRODUCTION_SERVICES,
        RecoveryStep.RESTORE_DATABASE,
        RecoveryStep.VERIFY_DATABASE_INTEGRITY,
        RecoveryStep.UPDATE_DATABASE_CONNECTIONS,
    ),
    RecoveryPhase.FILE_RECOVERY: (
        RecoveryStep.RESTORE_FILES,
        RecoveryStep.VERIFY_FILE_INTEGRITY,
        RecoveryStep.UPDATE_FILE_PERMISSIONS,
    ),
    RecoveryPhase.APPLICATION_RECOVERY: (
        RecoveryStep.DEPLOY_APPLICATION,
        RecoveryStep.UPDATE_CONFIGURATION,
        RecoveryStep.RESTART_SERVICES,
        RecoveryStep.VERIFY_APPLICATION_HEALTH,
    ),
    RecoveryPhase.VERIFICATION: (
        RecoveryStep.RUN_HEALTH_CHECKS,
        RecoveryStep.VALIDATE_CRITICAL_FUNCTIONS,
        RecoveryStep.PERFORM_SMOKE_TESTS,
        RecoveryStep.NOTIFY_RECOVERY_COMPLETE,
    ),
}

CRITICAL_STEPS: frozenset[RecoveryStep] = frozenset({
    RecoveryStep.RESTORE_DATABASE,
    RecoveryStep.VERIFY_DATABASE_INTEGRITY,
    RecoveryStep.DEPLOY_APPLICATION,
})


def is_critical_step(step: str) -> bool:
    return step in CRITICAL_STEPS


# (estimated minutes, instructions)
_STEP_DETAILS: dict[RecoveryStep, tuple[int, str]] = {
    RecoveryStep.ASSESS_SYSTEM_DAMAGE: (
        5, "Probe the database, required paths and configured services to scope the outage.",
    ),
    RecoveryStep.IDENTIFY_LATEST_BACKUPS: (
        2, "Locate the newest verified database backup and the newest file backup.",
    ),
    RecoveryStep.PREPARE_RECOVERY_ENVIRONMENT: (
        3, "Create a clean per-session recovery workspace.",
    ),
    RecoveryStep.STOP_PRODUCTION_SERVICES: (
        5, "Enable maintenance mode and stop background jobs writing to the database.",
    ),
    RecoveryStep.RESTORE_DATABASE: (
        15, "Run pg_restore --clean --if-exists from the latest verified backup.",
    ),
    RecoveryStep.VERIFY_DATABASE_INTEGRITY: (
        5, "Count rows in every critical table; any unreadable table aborts recovery.",
    ),
    RecoveryStep.UPDATE_DATABASE_CONNECTIONS: (
        5, "Point application connection settings at the restored database.",
    ),
    RecoveryStep.RESTORE_FILES: (
        30, "Extract the latest file archive into the target directory.",
    ),
    RecoveryStep.VERIFY_FILE_INTEGRITY: (
        10, "Confirm every required path exists after extraction.",
    ),
    RecoveryStep.UPDATE_FILE_PERMISSIONS: (
        5, "Reset ownership and permissions on restored files.",
    ),
    RecoveryStep.DEPLOY_APPLICATION: (
        15, "Deploy the application release to production.",
    ),
    RecoveryStep.UPDATE_CONFIGURATION: (
        5, "Apply production configuration and secrets.",
    ),
    RecoveryStep.RESTART_SERVICES: (
        5, "Restart application services and background workers.",
    ),
    RecoveryStep.VERIFY_APPLICATION_HEALTH: (
        5, "Confirm the application responds on its health endpoints.",
    ),
    RecoveryStep.RUN_HEALTH_CHECKS: (
        5, "Re-run database connectivity and file system access checks.",
    ),
    RecoveryStep.VALIDATE_CRITICAL_FUNCTIONS: (
        5, "Exercise business-critical flows end to end.",
    ),
    RecoveryStep.PERFORM_SMOKE_TESTS: (
        5, "Run the smoke test suite against production.",
    ),
    RecoveryStep.NOTIFY_RECOVERY_COMPLETE: (
        1, "Tell stakeholders the recovery has finished.",
    ),
}


def default_procedures() -> list[RecoveryProcedure]:
    """The built-in catalog: one procedure per step, in execution order.

    Each step depends on the step before it in the same phase; the first
    step of a phase depends on the last step of the previous phase.
    """
    procedures: list[RecoveryProcedure] = []
    previous: RecoveryStep | None = None
    for phase, steps in PHASES.items():
        for step in steps:
            minutes, instructions = _STEP_DETAILS[step]
            procedures.append(RecoveryProcedure(
                procedure_name=step.value,
                procedure_type=phase.value,
                estimated_duration_minutes=minutes,
                dependencies=[previous.value] if previous else [],
                is_critical=step in CRITICAL_STEPS,
                instructions=instructions,
            ))
            previous = step
    return procedures
