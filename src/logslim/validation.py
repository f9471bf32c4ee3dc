"""Input limits checked before and after segmentation."""
from __future__ import annotations

import logging
from typing import Any, Optional, Sequence

from logslim.config import InputLimits
from logslim.exceptions import InputTooLargeError, InvalidInputError, TooManyEventsError
from logslim.types import LogEvent

logger = logging.getLogger(__name__)

_MB = 1024 * 1024


class InputValidator:
    def __init__(self, limits: Optional[InputLimits] = None) -> None:
        self.limits = limits or InputLimits()

    def validate_log_input(self, text: Any) -> float:
        """Check raw input; returns its UTF-8 size in MB."""
        if not isinstance(text, str):
            raise InvalidInputError(f"log input must be str, got {type(text).__name__}")
        size_mb = len(text.encode("utf-8", errors="replace")) / _MB
        if size_mb > self.limits.max_log_size_mb:
            raise InputTooLargeError(
                f"log size {size_mb:.2f}MB exceeds maximum {self.limits.max_log_size_mb}MB")
        return size_mb

    def validate_events(self, events: Sequence[LogEvent]) -> int:
        if len(events) > self.limits.max_events:
            raise TooManyEventsError(
                f"event count {len(events)} exceeds maximum {self.limits.max_events}")
        for i, event in enumerate(events):
            if len(event.key) > self.limits.max_event_chars:
                raise InvalidInputError(
                    f"event {i} signature is {len(event.key)} chars, "
                    f"maximum is {self.limits.max_event_chars}")
        return len(events)
