"""Shared fakes for the database bootstrap tests."""
import re
import sys
from pathlib import Path

_PROJECT_ROOT = Path(__file__).parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

import pytest

from container_runtime import ExecResult
from databases import ResourceCreateError, ResourceQueryError


class FakeStore:
    """In-memory ResourceStore that records every call."""

    def __init__(self, existing=(), fail_create=(), fail_query=(), ready_after=0):
        self.databases = set(existing)
        self.fail_create = set(fail_create)
        self.fail_query = set(fail_query)
        # Number of failed probes before the store reports ready; None never becomes ready
        self.ready_after = ready_after
        self.probe_calls = 0
        self.exists_calls = []
        self.create_calls = []

    def probe(self):
        self.probe_calls += 1
        if self.ready_after is None:
            return False
        return self.probe_calls > self.ready_after

    def exists(self, name):
        self.exists_calls.append(name)
        if name in self.fail_query:
            raise ResourceQueryError(name, "connection reset")
        return name in self.databases

    def create(self, name):
        self.create_calls.append(name)
        if name in self.fail_create:
            raise ResourceCreateError(name, "permission denied")
        self.databases.add(name)


class FakeClock:
    """Monotonic clock whose sleep() advances time instantly."""

    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


class FakePostgresRuntime:
    """ContainerRuntime emulating pg_isready and the psql calls PostgresStore makes."""

    def __init__(self, databases=(), ready=True, fail_create=()):
        self.databases = set(databases)
        self.ready = ready
        self.fail_create = set(fail_create)
        self.calls = []

    def exec(self, container, command):
        self.calls.append((container, list(command)))
        if command[0] == "pg_isready":
            return ExecResult(0 if self.ready else 2, "", "" if self.ready else "no response")

        if command[0] == "psql" and "-tAc" in command:
            match = re.search(r"datname = '(.*)'$", command[-1])
            name = match.group(1).replace("''", "'")
            return ExecResult(0, "1\n" if name in self.databases else "\n", "")

        if command[0] == "psql" and "-c" in command:
            match = re.search(r'CREATE DATABASE "(.*)"$', command[-1])
            name = match.group(1).replace('""', '"')
            if name in self.fail_create or name in self.databases:
                return ExecResult(1, "", f'ERROR:  could not create database "{name}"')
            self.databases.add(name)
            return ExecResult(0, "CREATE DATABASE\n", "")

        return ExecResult(127, "", f"unknown command {command[0]}")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_store():
    return FakeStore()


@pytest.fixture
def clean_env(monkeypatch):
    """Remove configuration variables the host environment might set."""
    for key in (
        "POSTGRES_CONTAINER",
        "POSTGRES_USER",
        "POSTGRES_WAIT_TIMEOUT",
        "INIT_DB_DATABASES",
        "PORTAINER_URL",
        "PORTAINER_USERNAME",
        "PORTAINER_PASSWORD",
        "PORTAINER_ENDPOINT_ID",
    ):
        monkeypatch.delenv(key, raising=False)
    return monkeypatch
