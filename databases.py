#!/usr/bin/env python3
"""
PostgreSQL database initialization
Creates isolated PostgreSQL databases for the stack's services.
Can be imported as a library or run directly.

Usage as library:
    from databases import PostgresStore, init_all_databases
    summary = init_all_databases(PostgresStore(DockerCLI()))

Usage as script:
    python databases.py [--timeout 60] [--database NAME ...] [--strict]
"""

import argparse
import enum
import sys
import time
from dataclasses import dataclass, replace
from typing import Callable, Optional, Protocol, Sequence, Tuple

from console import print_divider, print_error, print_header, print_info, print_success, print_warning
from container_runtime import ContainerRuntime, DockerCLI
from settings import (
    DEFAULT_CONTAINER,
    DEFAULT_DATABASES,
    DEFAULT_ENV_FILE,
    DEFAULT_MAX_WAIT,
    DEFAULT_USER,
    ConfigurationError,
    Settings,
)

# List of databases to create (add new services in settings.DEFAULT_DATABASES)
INIT_DB_DATABASES = DEFAULT_DATABASES
POSTGRES_CONTAINER = DEFAULT_CONTAINER
POSTGRES_USER = DEFAULT_USER

POLL_INTERVAL = 1.0
PROGRESS_EVERY = 10

# NAMEDATALEN - 1; longer names are silently truncated by PostgreSQL
MAX_NAME_LENGTH = 63

# =============================================================================
# ERRORS AND RESULT TYPES
# =============================================================================

class DatabaseInitError(Exception):
    pass


class ReadinessTimeout(DatabaseInitError):
    def __init__(self, max_wait: float):
        super().__init__(f"PostgreSQL did not become ready in {max_wait}s")
        self.max_wait = max_wait


class ResourceQueryError(DatabaseInitError):
    def __init__(self, name: str, detail: str = ""):
        message = f"Failed to check database '{name}'"
        super().__init__(f"{message}: {detail}" if detail else message)
        self.name = name
        self.detail = detail


class ResourceCreateError(DatabaseInitError):
    def __init__(self, name: str, detail: str = ""):
        message = f"Failed to create database '{name}'"
        super().__init__(f"{message}: {detail}" if detail else message)
        self.name = name
        self.detail = detail


class ProvisionOutcome(enum.Enum):
    CREATED = "created"
    ALREADY_EXISTS = "exists"
    FAILED = "failed"


class ReadinessState(enum.Enum):
    WAITING = "waiting"
    READY = "ready"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class ProvisionSummary:
    """Tally of one provisioning run. Each record() returns a new summary."""

    created: int = 0
    existing: int = 0
    failed: int = 0
    outcomes: Tuple[Tuple[str, ProvisionOutcome], ...] = ()

    @property
    def success(self) -> bool:
        return self.failed == 0

    @property
    def total(self) -> int:
        return self.created + self.existing + self.failed

    def record(self, name: str, outcome: ProvisionOutcome) -> "ProvisionSummary":
        outcomes = self.outcomes + ((name, outcome),)
        if outcome is ProvisionOutcome.CREATED:
            return replace(self, created=self.created + 1, outcomes=outcomes)
        if outcome is ProvisionOutcome.ALREADY_EXISTS:
            return replace(self, existing=self.existing + 1, outcomes=outcomes)
        if outcome is ProvisionOutcome.FAILED:
            return replace(self, failed=self.failed + 1, outcomes=outcomes)
        raise ValueError(f"Unknown provision outcome: {outcome!r}")

# =============================================================================
# TARGET SERVICE
# =============================================================================

class ResourceStore(Protocol):
    def probe(self) -> bool:
        ...

    def exists(self, name: str) -> bool:
        ...

    def create(self, name: str) -> None:
        ...


def quote_literal(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def quote_identifier(value: str) -> str:
    return '"' + value.replace('"', '""') + '"'


class PostgresStore:
    """PostgreSQL server reached by running pg_isready/psql inside its container"""

    def __init__(self, runtime: ContainerRuntime, container: str = POSTGRES_CONTAINER,
                 user: str = POSTGRES_USER):
        self.runtime = runtime
        self.container = container
        self.user = user

    def probe(self) -> bool:
        return self.runtime.exec(self.container, ["pg_isready", "-U", self.user]).ok

    def exists(self, name: str) -> bool:
        query = f"SELECT 1 FROM pg_database WHERE datname = {quote_literal(name)}"
        result = self.runtime.exec(self.container, ["psql", "-U", self.user, "-tAc", query])
        if not result.ok:
            raise ResourceQueryError(name, result.stderr.strip())
        return result.stdout.strip() == "1"

    def create(self, name: str) -> None:
        statement = f"CREATE DATABASE {quote_identifier(name)}"
        result = self.runtime.exec(self.container, ["psql", "-U", self.user, "-c", statement])
        if not result.ok:
            raise ResourceCreateError(name, result.stderr.strip())

# =============================================================================
# READINESS GATE
# =============================================================================

def poll_until_ready(probe: Callable[[], bool], max_wait: float = DEFAULT_MAX_WAIT,
                     interval: float = POLL_INTERVAL, label: str = "PostgreSQL",
                     sleep: Callable[[float], None] = time.sleep,
                     clock: Callable[[], float] = time.monotonic) -> ReadinessState:
    """
    Probe at a fixed interval until success or until max_wait seconds elapsed

    A probe raising OSError or DatabaseInitError counts as not ready. The last sleep is cut short so the
    deadline is never overshot by more than one probe.

    Returns:
        ReadinessState.READY or ReadinessState.TIMED_OUT
    """
    print_info(f"Waiting for {label} to be ready...")
    start = clock()
    next_progress = PROGRESS_EVERY
    state = ReadinessState.WAITING

    while state is ReadinessState.WAITING:
        try:
            ready = probe()
        except (DatabaseInitError, OSError) as e:
            print_warning(f"{label} probe failed: {e}")
            ready = False

        elapsed = clock() - start
        if ready:
            state = ReadinessState.READY
        elif elapsed >= max_wait:
            state = ReadinessState.TIMED_OUT
        else:
            if elapsed >= next_progress:
                print_info(f"Still waiting for {label}... ({int(elapsed)}s/{max_wait}s)")
                next_progress += PROGRESS_EVERY
            sleep(min(interval, max_wait - elapsed))

    if state is ReadinessState.READY:
        print_success(f"{label} is ready")
    else:
        print_error(f"{label} did not become ready in {max_wait}s")
    return state


def wait_for_postgres(store: ResourceStore, max_wait: float = DEFAULT_MAX_WAIT, **kwargs) -> bool:
    """Returns True once PostgreSQL accepts connections, False on timeout."""
    return poll_until_ready(store.probe, max_wait=max_wait, **kwargs) is ReadinessState.READY

# =============================================================================
# PROVISIONER
# =============================================================================

def validate_name(name: str) -> Optional[str]:
    """Returns a reason the name cannot be provisioned, or None."""
    if not name or not name.strip():
        return "database name is empty"
    if "\x00" in name:
        return "database name contains a NUL character"
    if len(name.encode('utf-8')) > MAX_NAME_LENGTH:
        return f"database name is longer than {MAX_NAME_LENGTH} bytes"
    return None


def create_database(store: ResourceStore, name: str, strict: bool = False) -> ProvisionOutcome:
    """
    Create a single database if it does not exist

    Args:
        store: Target PostgreSQL server
        name: Database name, matched case-sensitively
        strict: Treat a failed existence check as a failure instead of "absent"

    Returns:
        ProvisionOutcome for this database; failures are never raised
    """
    problem = validate_name(name)
    if problem:
        print_error(f"Skipping database {name!r}: {problem}")
        return ProvisionOutcome.FAILED

    try:
        if store.exists(name):
            print_info(f"Database '{name}' already exists")
            return ProvisionOutcome.ALREADY_EXISTS
    except (ResourceQueryError, OSError) as e:
        if strict:
            print_error(f"{e} (strict mode, not attempting creation)")
            return ProvisionOutcome.FAILED
        print_warning(f"{e}; assuming database '{name}' does not exist")

    print_info(f"Creating database '{name}'...")
    try:
        store.create(name)
    except ResourceCreateError as e:
        print_error(str(e))
        return ProvisionOutcome.FAILED
    except OSError as e:
        print_error(f"Failed to create database '{name}': {e}")
        return ProvisionOutcome.FAILED

    print_success(f"Database '{name}' created")
    return ProvisionOutcome.CREATED


def provision_all(store: ResourceStore, databases: Sequence[str], strict: bool = False) -> ProvisionSummary:
    """Ensures every database exists, in order. One failure never stops the rest."""
    summary = ProvisionSummary()
    for name in databases:
        summary = summary.record(name, create_database(store, name, strict=strict))
    return summary


def init_all_databases(store: ResourceStore, databases: Sequence[str] = INIT_DB_DATABASES,
                       max_wait: float = DEFAULT_MAX_WAIT, strict: bool = False,
                       **gate_kwargs) -> ProvisionSummary:
    """
    Initialize all service databases

    Waits for PostgreSQL first; nothing is provisioned if it never becomes ready.

    Raises:
        ReadinessTimeout: PostgreSQL did not accept connections within max_wait
    """
    print_header("Initializing PostgreSQL Databases")
    if not databases:
        print_warning("No databases configured (INIT_DB_DATABASES is empty); nothing will be created")

    if not wait_for_postgres(store, max_wait=max_wait, **gate_kwargs):
        raise ReadinessTimeout(max_wait)

    summary = provision_all(store, databases, strict=strict)

    print_divider()
    if summary.success:
        print_success(f"Database initialization complete: {summary.created} created, "
                      f"{summary.existing} already existed")
    else:
        print_error(f"Database initialization finished with errors: {summary.created} created, "
                    f"{summary.existing} already existed, {summary.failed} failed")
    return summary

# =============================================================================
# ENTRY POINT
# =============================================================================

def build_runtime(settings: Settings, transport: str) -> ContainerRuntime:
    """Creates the container runtime handle for the chosen transport."""
    if transport == "docker":
        return DockerCLI()

    if transport == "portainer":
        from portainer_api import PortainerAPI

        if not settings.portainer_username or not settings.portainer_password:
            raise ConfigurationError("PORTAINER_USERNAME and PORTAINER_PASSWORD are required for the portainer transport")

        api = PortainerAPI(base_url=settings.portainer_url, endpoint_id=settings.portainer_endpoint_id)
        if not api.wait_for_portainer():
            raise DatabaseInitError("Portainer is not reachable")
        if not api.authenticate(settings.portainer_username, settings.portainer_password):
            raise DatabaseInitError("Portainer authentication failed")
        return api

    raise ConfigurationError(f"Unknown transport: {transport}")


def non_negative_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid integer: {value!r}")
    if number < 0:
        raise argparse.ArgumentTypeError(f"must not be negative: {value}")
    return number


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create the PostgreSQL databases used by stack services.")
    parser.add_argument("--env-file", default=DEFAULT_ENV_FILE, help="Path to the stack .env file")
    parser.add_argument("--container", help="PostgreSQL container name (default: postgres)")
    parser.add_argument("--user", help="PostgreSQL superuser (default: postgres)")
    parser.add_argument("--timeout", type=non_negative_int, help="Seconds to wait for PostgreSQL (default: 60)")
    parser.add_argument("--database", action="append", dest="databases", metavar="NAME",
                        help="Database to ensure; repeat to replace the configured list")
    parser.add_argument("--strict", action="store_true",
                        help="Fail a database whose existence check errors instead of trying to create it")
    parser.add_argument("--transport", choices=("docker", "portainer"), default="docker",
                        help="How to reach the PostgreSQL container")
    parser.add_argument("--portainer-url", help="Portainer base URL for the portainer transport")
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)

    try:
        settings = Settings.load(args.env_file)
    except ConfigurationError as e:
        print_error(f"Configuration error: {e}")
        return 1

    overrides = {}
    if args.container:
        overrides["container"] = args.container
    if args.user:
        overrides["user"] = args.user
    if args.timeout is not None:
        overrides["max_wait"] = args.timeout
    if args.databases:
        overrides["databases"] = tuple(args.databases)
    if args.portainer_url:
        overrides["portainer_url"] = args.portainer_url.rstrip('/')
    settings = replace(settings, **overrides)

    try:
        runtime = build_runtime(settings, args.transport)
        store = PostgresStore(runtime, container=settings.container, user=settings.user)
        summary = init_all_databases(store, settings.databases, max_wait=settings.max_wait, strict=args.strict)
    except ConfigurationError as e:
        print_error(f"Configuration error: {e}")
        return 1
    except DatabaseInitError as e:
        print_error(f"Database initialization aborted: {e}")
        return 1

    return 0 if summary.success else 1


if __name__ == "__main__":
    sys.exit(main())
