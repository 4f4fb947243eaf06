"""Third-party caveat discharge protocol."""

from .authority import (
    DischargeAuthority,
    InMemoryDischargeAuthority,
    PollRecord,
    PollState,
    UnknownPollError,
)

__all__ = [
    "DischargeAuthority",
    "InMemoryDischargeAuthority",
    "PollRecord",
    "PollState",
    "UnknownPollError",
]
