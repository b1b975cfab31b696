from __future__ import annotations

import pytest

from fakes import FakeTimer


@pytest.fixture
def timer() -> FakeTimer:
    return FakeTimer()
