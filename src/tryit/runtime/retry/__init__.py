"""Bounded polling with pluggable backoff."""

from .backoff import Backoff, ConstantBackoff, ExponentialBackoff, LinearBackoff, backoff_from_settings
from .policy import PollPolicy, poll_until

__all__ = [
    "Backoff", "ExponentialBackoff", "LinearBackoff", "ConstantBackoff", "backoff_from_settings",
    "PollPolicy", "poll_until",
]
