"""Bounded wait for a selection made in an external picker."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence
from typing import Any, Protocol

from petsync._constants import PICKER_POLL_INTERVAL, PICKER_TIMEOUT

_logger = logging.getLogger(__name__)


class PetPicker(Protocol):
    """UI collaborator showing a list of raw pet items for the user to pick from."""

    async def show(self, items: Sequence[dict[str, Any]], favorited_ids: Sequence[str]) -> None: ...

    def is_open(self) -> bool: ...

    def selected_index(self) -> int | None: ...

    async def close(self) -> None: ...


async def wait_for_selection(
    picker: PetPicker,
    item_count: int,
    *,
    timeout: float = PICKER_TIMEOUT,
    poll_interval: float = PICKER_POLL_INTERVAL,
) -> int | None:
    """Poll *picker* until it reports a valid index.

    Returns ``None`` when the picker closes, the index never becomes valid or
    *timeout* seconds elapse. A timeout is not an error.
    """
    deadline = time.monotonic() + timeout
    while True:
        try:
            index = picker.selected_index()
        except Exception:
            _logger.debug("Reading picker selection failed", exc_info=True)
            index = None
        if index is not None and 0 <= index < item_count:
            return index
        try:
            if not picker.is_open():
                return None
        except Exception:
            _logger.debug("Reading picker state failed", exc_info=True)
            return None
        if time.monotonic() >= deadline:
            _logger.debug("Picker selection timed out after %.1fs", timeout)
            return None
        await asyncio.sleep(poll_interval)
