"""Team equip engine.

Converges the live active roster to a team's target ids through the remote
:class:`~petsync.actions.PetActions` calls. Calls are awaited one at a time,
in slot order, followed by a cleanup and a reconciliation pass.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Literal

from petsync.actions import Notifier, PetActions, log_notifier
from petsync.config import PetSyncConfig
from petsync.exceptions import TeamNotFoundError
from petsync.feeds import RosterFeeds
from petsync.ingestion.normalize import active_ids, safe_int, store_ids
from petsync.models.team import EquipResult, Team
from petsync.state.synchronizer import InventorySynchronizer
from petsync.teams import TeamStore

_logger = logging.getLogger(__name__)

INVENTORY_FULL_TITLE = "Inventory Full"
_MSG_NO_CANDIDATE = "Cannot equip team: no free slot to retrieve a pet from the store."
_MSG_RELOCATE_FAILED = "Cannot equip team: failed to free up a slot."
_MSG_STORE_FULL = "Cannot equip team: required pets are in the store and your inventory is full."

_PLACE_POSITION = {"x": 0, "y": 0}


class _EquipAborted(Exception):
    """Raised inside a run when a fatal capacity condition is hit."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class TeamEquipEngine:
    """Equip teams onto the active roster.

    Runs are serialized: a second :meth:`use_team` call waits until the
    one in flight has finished.
    """

    def __init__(
        self,
        *,
        teams: TeamStore,
        synchronizer: InventorySynchronizer,
        feeds: RosterFeeds,
        actions: PetActions,
        notifier: Notifier = log_notifier,
        config: PetSyncConfig | None = None,
    ) -> None:
        self._teams = teams
        self._synchronizer = synchronizer
        self._feeds = feeds
        self._actions = actions
        self._notifier = notifier
        self._config = config or PetSyncConfig()
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    async def use_team(self, team_id: str) -> EquipResult:
        async with self._lock:
            # Resolved under the lock so a queued run sees the slots saved while it waited.
            team = self._teams.get_team(team_id)
            if team is None:
                raise TeamNotFoundError(team_id)
            try:
                return await self._run(team)
            finally:
                self._teams.mark_team_as_used(team.id)

    async def use_adjacent_team(self, direction: Literal[1, -1]) -> EquipResult | None:
        """Equip the team after or before the last used one; ``None`` without teams."""
        team = self._teams.adjacent_team(direction)
        if team is None:
            return None
        return await self.use_team(team.id)

    # ------------------------------------------------------------------
    # Live state
    # ------------------------------------------------------------------

    async def _active_ids(self) -> list[str]:
        try:
            snapshot = await self._feeds.active.get()
        except Exception:
            _logger.debug("Reading active roster failed", exc_info=True)
            return []
        return active_ids(snapshot, self._config.active_capacity)

    async def _store_ids(self) -> set[str]:
        try:
            return store_ids(await self._feeds.store.get())
        except Exception:
            _logger.debug("Reading store contents failed", exc_info=True)
            return set()

    async def _store_free(self) -> int:
        try:
            count = safe_int(await self._feeds.store_count.get()) or 0
        except Exception:
            _logger.debug("Reading store count failed", exc_info=True)
            count = 0
        return max(0, self._config.store_capacity - count)

    async def _inventory_full(self) -> bool:
        try:
            return bool(await self._actions.is_inventory_full())
        except Exception:
            _logger.debug("Inventory capacity check failed", exc_info=True)
            return False

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def _run(self, team: Team) -> EquipResult:
        targets = team.target_ids()[: self._config.active_capacity]
        target_set = set(targets)
        store_name = self._config.store_name

        active = await self._active_ids()
        store_free = await self._store_free()
        in_store = await self._store_ids()
        _logger.debug(
            "Equipping team %s targets=%s active=%s store_free=%d",
            team.id,
            targets,
            active,
            store_free,
        )

        swapped = placed = skipped = 0
        for target in targets:
            if target in active:
                skipped += 1
                continue

            if target in in_store:
                if await self._inventory_full():
                    try:
                        await self._free_inventory_slot(active, in_store, target_set, store_free)
                    except _EquipAborted as aborted:
                        _logger.warning("Equip of team %s aborted: %s", team.id, aborted.message)
                        self._notify(aborted.message)
                        return EquipResult(swapped=swapped, placed=placed, skipped=skipped, aborted=True)
                    store_free = max(0, store_free - 1)
                try:
                    await self._actions.retrieve_item_from_storage(target, store_name)
                except Exception:
                    _logger.debug("Retrieving %s from store failed; skipping", target, exc_info=True)
                    continue
                in_store.discard(target)
                store_free = min(self._config.store_capacity, store_free + 1)

            off_target = next((active_id for active_id in active if active_id not in target_set), None)
            if off_target is not None:
                try:
                    await self._actions.swap_pet(off_target, target)
                except Exception:
                    _logger.debug("Swapping %s for %s failed", off_target, target, exc_info=True)
                    continue
                swapped += 1
                active = [active_id for active_id in active if active_id != off_target]
                active.append(target)
                if store_free > 0:
                    try:
                        await self._actions.put_item_in_storage(off_target, store_name)
                    except Exception:
                        _logger.debug("Moving displaced %s to store failed", off_target, exc_info=True)
                    else:
                        store_free -= 1
                        in_store.add(off_target)
            else:
                try:
                    await self._place(target)
                except Exception:
                    _logger.debug("Placing %s failed", target, exc_info=True)
                    continue
                placed += 1
                active.append(target)

        await self._store_leftovers(active, target_set)

        extra_swapped, extra_placed = await self._reconcile(targets)
        result = EquipResult(
            swapped=swapped + extra_swapped,
            placed=placed + extra_placed,
            skipped=skipped,
        )
        _logger.debug("Equipped team %s: %s", team.id, result)
        return result

    async def _free_inventory_slot(
        self,
        active: list[str],
        in_store: set[str],
        target_set: set[str],
        store_free: int,
    ) -> None:
        """Move one non-target inventory entity into the store or raise ``_EquipAborted``."""
        if store_free <= 0:
            raise _EquipAborted(_MSG_STORE_FULL)
        roster = await self._synchronizer.get_merged_roster()
        candidate = next(
            (
                entity.id
                for entity in roster
                if entity.id not in in_store and entity.id not in active and entity.id not in target_set
            ),
            None,
        )
        if candidate is None:
            raise _EquipAborted(_MSG_NO_CANDIDATE)
        try:
            await self._actions.put_item_in_storage(candidate, self._config.store_name)
        except Exception as exc:
            _logger.debug("Relocating %s to store failed", candidate, exc_info=True)
            raise _EquipAborted(_MSG_RELOCATE_FAILED) from exc
        in_store.add(candidate)

    async def _store_leftovers(self, active: list[str], target_set: set[str]) -> None:
        store_free = await self._store_free()
        for leftover in [active_id for active_id in active if active_id not in target_set]:
            if store_free <= 0:
                break
            try:
                await self._actions.store_pet(leftover)
                await self._actions.put_item_in_storage(leftover, self._config.store_name)
            except Exception:
                _logger.debug("Moving leftover %s to store failed", leftover, exc_info=True)
                continue
            store_free -= 1
            active.remove(leftover)

    async def _reconcile(self, targets: list[str]) -> tuple[int, int]:
        """Re-read the active roster and fix any remaining mismatch.

        Returns the number of swaps and placements performed.
        """
        target_set = set(targets)
        active = await self._active_ids()

        surplus = max(0, len(active) - len(targets))
        for extra in [active_id for active_id in active if active_id not in target_set][:surplus]:
            try:
                await self._actions.store_pet(extra)
            except Exception:
                _logger.debug("Storing surplus %s failed", extra, exc_info=True)
                continue
            active.remove(extra)

        free_slots = [active_id for active_id in active if active_id not in target_set]
        swapped = placed = 0
        for target in targets:
            if target in active:
                continue
            slot_id = free_slots.pop(0) if free_slots else None
            try:
                if slot_id is not None:
                    await self._actions.swap_pet(slot_id, target)
                    swapped += 1
                else:
                    await self._place(target)
                    placed += 1
            except Exception:
                _logger.debug("Reconciling %s failed", target, exc_info=True)
        if swapped or placed:
            _logger.debug("Reconciliation applied swapped=%d placed=%d", swapped, placed)
        return swapped, placed

    async def _place(self, entity_id: str) -> None:
        await self._actions.place_pet(
            entity_id,
            dict(_PLACE_POSITION),
            self._config.place_surface,
            self._config.place_layer,
        )

    def _notify(self, message: str) -> None:
        try:
            self._notifier(INVENTORY_FULL_TITLE, message)
        except Exception:
            _logger.debug("Notifier failed", exc_info=True)
