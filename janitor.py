"""
Janitor orchestration: validate options, compute the retention cutoff,
select flush routines and run them fail-fast against a store.
"""

import logging
import sys
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence, TextIO, Tuple

from config import StoreConfig, resolve_store_config, validate_config
from constants import (
    ACCESS_LIFESPAN,
    CONSENT_REQUEST_LIFESPAN,
    GRANT_TYPE_JWT_BEARER,
    LIFESPAN_OVERRIDE_KEYS,
    REFRESH_LIFESPAN,
    REQUESTS,
    TOKENS,
)
from duration_utils import format_duration
from error_utils import (
    CleanupCancelledError,
    ConfigurationError,
    RoutineError,
    UsageError,
)
from janitor_context import CleanupContext
from janitor_store_abc import JanitorStore
from janitor_store_factory import create_store

logger = logging.getLogger(__name__)

MISSING_DSN_MESSAGE = (
    "A DSN is required as a positional argument when not passing any of the following flags:\n"
    "- Using the environment variable with flag -e, --read-from-env\n"
    "- Using the config file with flag -c, --config"
)

MISSING_CATEGORY_MESSAGE = (
    f"Janitor requires at least --{TOKENS} or --{REQUESTS} "
    f"or --{GRANT_TYPE_JWT_BEARER} to be set"
)


class CleanupCategory(Enum):
    """Purge domains, declared in execution order."""

    ACCESS_TOKENS = "access tokens"
    REFRESH_TOKENS = "refresh tokens"
    LOGIN_CONSENT_REQUESTS = "login-consent requests"
    JWT_BEARER_GRANTS = "grant types jwt bearer"

    def __str__(self) -> str:
        return self.value


# Each selector flag expands to the categories it purges; tokens are coupled
SELECTOR_CATEGORIES = {
    TOKENS: (CleanupCategory.ACCESS_TOKENS, CleanupCategory.REFRESH_TOKENS),
    REQUESTS: (CleanupCategory.LOGIN_CONSENT_REQUESTS,),
    GRANT_TYPE_JWT_BEARER: (CleanupCategory.JWT_BEARER_GRANTS,),
}

# Category to store operation, in fixed execution order
ROUTINE_TABLE = (
    (CleanupCategory.ACCESS_TOKENS, "flush_inactive_access_tokens"),
    (CleanupCategory.REFRESH_TOKENS, "flush_inactive_refresh_tokens"),
    (CleanupCategory.LOGIN_CONSENT_REQUESTS, "flush_inactive_login_consent_requests"),
    (CleanupCategory.JWT_BEARER_GRANTS, "flush_inactive_jwt_bearer_grants"),
)


@dataclass
class JanitorOptions:
    """Parsed command line options for one janitor invocation."""

    dsn: Optional[str] = None
    keep_if_younger: timedelta = timedelta(0)
    access_lifespan: timedelta = timedelta(0)
    refresh_lifespan: timedelta = timedelta(0)
    consent_request_lifespan: timedelta = timedelta(0)
    tokens: bool = False
    requests: bool = False
    grant_type_jwt_bearer: bool = False
    read_from_env: bool = False
    config_paths: List[str] = field(default_factory=list)

    def selected_flags(self) -> List[str]:
        flags = {
            TOKENS: self.tokens,
            REQUESTS: self.requests,
            GRANT_TYPE_JWT_BEARER: self.grant_type_jwt_bearer,
        }
        return [flag for flag, enabled in flags.items() if enabled]

    def selected_categories(self) -> List[CleanupCategory]:
        categories = []
        for flag in self.selected_flags():
            categories.extend(SELECTOR_CATEGORIES[flag])
        return categories


@dataclass
class CleanupRoutine:
    """A store operation bound to the category it purges."""

    category: CleanupCategory
    operation: Callable[[CleanupContext, datetime], int]

    def __call__(self, ctx: CleanupContext, not_after: datetime) -> int:
        return self.operation(ctx, not_after)


@dataclass
class CleanupResult:
    """Routines that completed, in execution order, with rows removed."""

    not_after: datetime
    completed: List[Tuple[CleanupCategory, int]] = field(default_factory=list)

    @property
    def total_deleted(self) -> int:
        return sum(count for _, count in self.completed)

    @property
    def categories(self) -> List[CleanupCategory]:
        return [category for category, _ in self.completed]


def validate_arguments(options: JanitorOptions) -> None:
    """
    Check a locator and at least one category were supplied.

    Raises:
        UsageError: If either requirement is not met
    """
    has_indirection = options.read_from_env or bool(options.config_paths)
    if not (options.dsn or "").strip() and not has_indirection:
        raise UsageError(MISSING_DSN_MESSAGE)

    if not options.selected_flags():
        raise UsageError(MISSING_CATEGORY_MESSAGE)


def utc_now(now: Optional[datetime] = None) -> datetime:
    """Normalize ``now`` to an aware UTC datetime, reading the clock if absent."""
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def compute_cutoff(
    keep_if_younger: Optional[timedelta] = None, now: Optional[datetime] = None
) -> datetime:
    """
    Compute the retention cutoff.

    Args:
        keep_if_younger: Entries younger than this are kept. Zero or None
            means everything inactive is old enough.
        now: Current time, defaults to the UTC clock

    Returns:
        datetime: Timezone-aware UTC cutoff
    """
    now = utc_now(now)
    if keep_if_younger is not None and keep_if_younger > timedelta(0):
        return now - keep_if_younger
    return now


def lifespan_overrides(options: JanitorOptions) -> Dict[str, timedelta]:
    """Map the lifespan flags onto store config keys."""
    values = {
        ACCESS_LIFESPAN: options.access_lifespan,
        REFRESH_LIFESPAN: options.refresh_lifespan,
        CONSENT_REQUEST_LIFESPAN: options.consent_request_lifespan,
    }
    return {
        LIFESPAN_OVERRIDE_KEYS[flag]: duration
        for flag, duration in values.items()
        if duration is not None and duration > timedelta(0)
    }


def select_routines(
    store: JanitorStore, categories: Sequence[CleanupCategory]
) -> List[CleanupRoutine]:
    """Bind the selected categories to store operations in fixed order."""
    selected = set(categories)
    return [
        CleanupRoutine(category, getattr(store, method))
        for category, method in ROUTINE_TABLE
        if category in selected
    ]


def run_cleanup(
    ctx: CleanupContext,
    not_after: datetime,
    routines: Sequence[CleanupRoutine],
    out: Optional[TextIO] = None,
) -> CleanupResult:
    """
    Run routines in order, stopping at the first failure.

    Args:
        ctx: Cancellation context checked before every routine
        not_after: Retention cutoff shared by all routines
        routines: Ordered routines to execute
        out: Stream for success lines, defaults to stdout

    Returns:
        CleanupResult: Completed categories and rows deleted

    Raises:
        ConfigurationError: If no routines were given
        RoutineError: Wrapping the first routine failure
        CleanupCancelledError: If the context was cancelled
    """
    if not routines:
        raise ConfigurationError("clean up run received 0 routines")

    out = out or sys.stdout
    result = CleanupResult(not_after=not_after)

    for routine in routines:
        ctx.check()
        logger.info("Flushing inactive %s older than %s", routine.category, not_after.isoformat())
        try:
            deleted = routine(ctx, not_after)
        except CleanupCancelledError:
            raise
        except Exception as e:
            logger.error("Could not cleanup inactive %s: %s", routine.category, e)
            raise RoutineError(routine.category) from e

        deleted = deleted or 0
        logger.info("Removed %d inactive %s", deleted, routine.category)
        result.completed.append((routine.category, deleted))
        print(f"Successfully completed Janitor run on {routine.category}", file=out)

    return result


def purge(
    options: JanitorOptions,
    ctx: Optional[CleanupContext] = None,
    out: Optional[TextIO] = None,
    now: Optional[datetime] = None,
    store_factory: Optional[Callable[[StoreConfig], JanitorStore]] = None,
) -> CleanupResult:
    """
    Run one complete janitor invocation.

    Validates options, reads the clock once for both the cutoff and the
    store lifespans, resolves the store configuration with lifespan
    overrides, initializes the store and runs the selected routines.

    Raises:
        JanitorError: Any usage, initialization, configuration or routine error
    """
    ctx = ctx or CleanupContext()

    validate_arguments(options)
    now = utc_now(now)
    not_after = compute_cutoff(options.keep_if_younger, now=now)
    config = resolve_store_config(
        dsn=options.dsn,
        read_from_env=options.read_from_env,
        config_paths=options.config_paths,
        overrides=lifespan_overrides(options),
    )
    issues = validate_config(config)
    if issues:
        raise ConfigurationError("; ".join(issues))

    logger.info(
        "Janitor cutoff %s (keep-if-younger %s, access %s, refresh %s, consent %s)",
        not_after.isoformat(),
        format_duration(options.keep_if_younger or timedelta(0)),
        format_duration(config.access_token_lifespan),
        format_duration(config.refresh_token_lifespan),
        format_duration(config.consent_request_max_age),
    )

    store = (store_factory or create_store)(config)
    store.pin_clock(now)
    with store:
        store.init(ctx)
        routines = select_routines(store, options.selected_categories())
        return run_cleanup(ctx, not_after, routines, out=out)
