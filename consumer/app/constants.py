"""Consumer-level constants shared across modules."""
from __future__ import annotations

from enum import Enum


class DispatchState(str, Enum):
    IDLE = "IDLE"
    DRAINING = "DRAINING"


SUBSCRIPTION_PROTOCOL = "sqs"

# Hard limits of the managed queue service.
MIN_RECEIVE_BATCH = 1
MAX_RECEIVE_BATCH = 10
MAX_WAIT_TIME_SECONDS = 20
MAX_VISIBILITY_TIMEOUT = 43_200
