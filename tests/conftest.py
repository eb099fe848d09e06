from __future__ import annotations

import pytest

from factories import NOW
from production_sequencing.services import Sequencer, SequencingService


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def sequencer(clock) -> Sequencer:
    return Sequencer(clock)


@pytest.fixture
def service(clock) -> SequencingService:
    return SequencingService(clock=clock)
