"""Shared pytest fixtures."""

from __future__ import annotations

import pytest

from orchestration.orchestrator import CollectionOrchestrator
from storage.jobs import InMemoryJobStore
from tests.fakes import InMemoryResultLog, RecordingSink, RecordingSleep


@pytest.fixture
def job_store():
    return InMemoryJobStore()


@pytest.fixture
def result_log():
    return InMemoryResultLog()


@pytest.fixture
def orchestrator(job_store, result_log):
    return CollectionOrchestrator(job_store, result_log)


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def sink():
    return RecordingSink()
