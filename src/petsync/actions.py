"""Remote pet mutations.

The equip engine only talks to the game through the :class:`PetActions`
protocol. :class:`HttpPetActions` is the production implementation posting to
the game bridge.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any, Protocol

from petsync._transport import Transport
from petsync.exceptions import PetSyncActionError

_logger = logging.getLogger(__name__)

Notifier = Callable[[str, str], None]
"""``(title, message) -> None``; user-facing notification sink."""


def log_notifier(title: str, message: str) -> None:
    """Default :data:`Notifier` emitting a WARNING record."""
    _logger.warning("%s: %s", title, message)


class PetActions(Protocol):
    """Remote operations the equip engine may issue."""

    async def swap_pet(self, active_id: str, new_id: str) -> None: ...

    async def place_pet(self, entity_id: str, position: Mapping[str, int], surface: str, layer: int) -> None: ...

    async def store_pet(self, entity_id: str) -> None: ...

    async def put_item_in_storage(self, entity_id: str, store_name: str) -> None: ...

    async def retrieve_item_from_storage(self, entity_id: str, store_name: str) -> None: ...

    async def get_favorite_ids(self) -> list[str]: ...

    async def is_inventory_full(self) -> bool: ...


class HttpPetActions:
    """:class:`PetActions` backed by the game bridge HTTP API.

    Every endpoint answers ``{"ok": true, "data": ...}``; anything else
    raises :class:`~petsync.exceptions.PetSyncActionError`.
    """

    def __init__(self, transport: Transport) -> None:
        self._transport = transport

    async def _call(self, action: str, endpoint: str, payload: Mapping[str, Any]) -> Any:
        response = await self._transport.post_json(endpoint, payload)
        if response.get("ok") is not True:
            message = response.get("error") or response.get("message") or "unknown error"
            raise PetSyncActionError(
                f"{action} refused by bridge: {message}",
                action=action,
                endpoint=endpoint,
            )
        return response.get("data")

    async def swap_pet(self, active_id: str, new_id: str) -> None:
        await self._call("swap_pet", "/pets/swap", {"activeId": active_id, "newId": new_id})

    async def place_pet(self, entity_id: str, position: Mapping[str, int], surface: str, layer: int) -> None:
        await self._call(
            "place_pet",
            "/pets/place",
            {"id": entity_id, "position": dict(position), "surface": surface, "layer": layer},
        )

    async def store_pet(self, entity_id: str) -> None:
        await self._call("store_pet", "/pets/store", {"id": entity_id})

    async def put_item_in_storage(self, entity_id: str, store_name: str) -> None:
        await self._call("put_item_in_storage", "/storage/put", {"id": entity_id, "storage": store_name})

    async def retrieve_item_from_storage(self, entity_id: str, store_name: str) -> None:
        await self._call(
            "retrieve_item_from_storage",
            "/storage/retrieve",
            {"id": entity_id, "storage": store_name},
        )

    async def get_favorite_ids(self) -> list[str]:
        data = await self._call("get_favorite_ids", "/inventory/favorites", {})
        ids = data.get("ids") if isinstance(data, Mapping) else data
        if not isinstance(ids, list):
            return []
        return [item for item in ids if isinstance(item, str) and item]

    async def is_inventory_full(self) -> bool:
        data = await self._call("is_inventory_full", "/inventory/full", {})
        if isinstance(data, Mapping):
            return data.get("full") is True
        return data is True
