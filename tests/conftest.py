from __future__ import annotations

import pytest

from sqs_worker.app.application import publisher as publisher_module
from sqs_worker.app.application import worker as worker_module
from tests.fakes import SleepRecorder


@pytest.fixture()
def worker_sleeps(monkeypatch: pytest.MonkeyPatch) -> SleepRecorder:
    recorder = SleepRecorder()
    monkeypatch.setattr(worker_module, "_sleep", recorder)
    return recorder


@pytest.fixture()
def publisher_sleeps(monkeypatch: pytest.MonkeyPatch) -> SleepRecorder:
    recorder = SleepRecorder()
    monkeypatch.setattr(publisher_module, "_sleep", recorder)
    return recorder
