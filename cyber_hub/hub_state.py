# cyber_hub/hub_state.py

import logging
import math
import random
import string
import threading
from typing import Callable, Dict, List, Optional, Tuple

from cyber_hub.hub_policy import HubPolicy
from cyber_hub.hub_storage import HubStorage
from cyber_hub.models import HubSnapshot, Invention, InventionDraft, SuitUpgrade
from cyber_hub.registry_view import SortOrder, sort_inventions

logger = logging.getLogger("cyber_hub")

ID_ALPHABET = string.digits + string.ascii_lowercase
ID_LENGTH = 9
MAX_ID_ATTEMPTS = 16

Listener = Callable[[HubSnapshot], None]


def clamp_score(value) -> int:
    return max(0, min(100, int(value)))


class HubState:
    """
    Canonical in-memory hub: inventions (newest first), essence and upgrades.

    - Loaded once from HubStorage at construction; policy defaults fill the gaps.
    - Every mutation writes the full snapshot back before returning, then
      notifies subscribers with a fresh snapshot.
    - Operations on an unknown invention id are no-ops.
    - A lock serializes mutations; callers on worker threads see one writer.
    """

    def __init__(
        self,
        storage: HubStorage,
        policy: Optional[HubPolicy] = None,
        *,
        id_factory: Optional[Callable[[], str]] = None,
        rng: Optional[random.Random] = None,
    ):
        self.storage = storage
        self.policy = policy or HubPolicy()
        self._rng = rng or random.Random()
        self._id_factory = id_factory or self._random_id
        self._lock = threading.RLock()
        self._listeners: List[Listener] = []

        self._inventions: List[Invention] = []
        self._essence: int = self.policy.initial_essence
        self._upgrades: List[SuitUpgrade] = []
        self._apply_loaded(self.storage.load())

    # -----------------------
    # Loading / persistence
    # -----------------------

    def _default_upgrades(self) -> List[SuitUpgrade]:
        return [SuitUpgrade.model_validate(u) for u in self.policy.fresh_upgrades()]

    def _apply_loaded(self, loaded: Optional[HubSnapshot]) -> None:
        if loaded is None:
            self._inventions = []
            self._essence = self.policy.initial_essence
            self._upgrades = self._default_upgrades()
            return

        self._inventions = list(loaded.inventions)
        self._essence = loaded.essence if loaded.essence is not None else self.policy.initial_essence
        # an empty list counts as present, only a missing field falls back
        self._upgrades = list(loaded.upgrades) if loaded.upgrades is not None else self._default_upgrades()
        logger.info(
            f"Hub state loaded: {len(self._inventions)} inventions, essence={self._essence}, "
            f"{len(self._upgrades)} upgrades"
        )

    def _snapshot_unlocked(self) -> HubSnapshot:
        return HubSnapshot(
            inventions=[inv.model_copy(deep=True) for inv in self._inventions],
            essence=self._essence,
            upgrades=[u.model_copy(deep=True) for u in self._upgrades],
        )

    def _commit_unlocked(self) -> HubSnapshot:
        snapshot = self._snapshot_unlocked()
        self.storage.save(snapshot)
        return snapshot

    def _notify(self, snapshot: HubSnapshot) -> None:
        for listener in list(self._listeners):
            try:
                listener(snapshot.model_copy(deep=True))
            except Exception as e:
                logger.exception(f"Hub listener {listener!r} failed: {e}")

    # -----------------------
    # Queries
    # -----------------------

    def snapshot(self) -> HubSnapshot:
        with self._lock:
            return self._snapshot_unlocked()

    @property
    def essence(self) -> int:
        with self._lock:
            return self._essence

    def get_invention(self, invention_id: str) -> Optional[Invention]:
        with self._lock:
            inv = self._find_unlocked(invention_id)
            return inv.model_copy(deep=True) if inv is not None else None

    def get_upgrade(self, upgrade_id: str) -> Optional[SuitUpgrade]:
        with self._lock:
            for u in self._upgrades:
                if u.id == upgrade_id:
                    return u.model_copy(deep=True)
            return None

    def inventions(self, order: SortOrder | str = SortOrder.NONE) -> List[Invention]:
        with self._lock:
            items = [inv.model_copy(deep=True) for inv in self._inventions]
        return sort_inventions(items, order)

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _find_unlocked(self, invention_id: str) -> Optional[Invention]:
        for inv in self._inventions:
            if inv.id == invention_id:
                return inv
        return None

    # -----------------------
    # Mutations
    # -----------------------

    def _random_id(self) -> str:
        return "".join(self._rng.choice(ID_ALPHABET) for _ in range(ID_LENGTH))

    def _new_id_unlocked(self) -> str:
        taken = {inv.id for inv in self._inventions}
        for _ in range(MAX_ID_ATTEMPTS):
            candidate = self._id_factory()
            if candidate and candidate not in taken:
                return candidate
            logger.warning(f"Invention id collision on '{candidate}', regenerating")
        raise RuntimeError(f"Could not generate a unique invention id in {MAX_ID_ATTEMPTS} attempts")

    def _draw_scores(self) -> Tuple[int, int, int]:
        p = self.policy
        return (
            self._rng.randrange(*p.stability_range),
            self._rng.randrange(*p.output_range),
            self._rng.randrange(*p.sync_range),
        )

    def create_invention(
        self,
        draft: InventionDraft | Dict,
        scores: Optional[Tuple[int, int, int]] = None,
    ) -> str:
        """
        Prepends a new Prototype invention and returns its id.

        `scores` is (stability, output, sync); when omitted they are drawn
        from the policy ranges.
        """
        if not isinstance(draft, InventionDraft):
            draft = InventionDraft.model_validate(draft)

        with self._lock:
            stability, output, sync = scores if scores is not None else self._draw_scores()
            invention = Invention(
                id=self._new_id_unlocked(),
                name=draft.name,
                description=draft.description,
                category=draft.category,
                tags=list(draft.tags),
                status="Prototype",
                quantumStability=clamp_score(stability),
                energyOutput=clamp_score(output),
                cyberSync=clamp_score(sync),
                resonance=0,
                notes="",
                imageUrl=draft.imageUrl,
            )
            self._inventions.insert(0, invention)
            snapshot = self._commit_unlocked()

        logger.info(f"Created invention {invention.id} '{invention.name}'")
        self._notify(snapshot)
        return invention.id

    def resonate(self, invention_id: str) -> None:
        with self._lock:
            inv = self._find_unlocked(invention_id)
            if inv is None:
                return
            inv.resonance += 1
            snapshot = self._commit_unlocked()
        self._notify(snapshot)

    def update_notes(self, invention_id: str, notes: str) -> None:
        with self._lock:
            inv = self._find_unlocked(invention_id)
            if inv is None:
                return
            inv.notes = notes
            snapshot = self._commit_unlocked()
        self._notify(snapshot)

    def credit_essence(self, amount: int) -> None:
        if amount < 0:
            raise ValueError(f"credit_essence amount must be >= 0, got {amount}")
        with self._lock:
            self._essence += int(amount)
            snapshot = self._commit_unlocked()
        self._notify(snapshot)

    def purchase_upgrade(self, upgrade_id: str) -> bool:
        """
        Spend essence on one level of an upgrade.

        Rejected (False, nothing changes) for an unknown upgrade, a maxed one,
        or when the balance is below the current cost.
        """
        with self._lock:
            index = next((i for i, u in enumerate(self._upgrades) if u.id == upgrade_id), None)
            if index is None:
                logger.info(f"Upgrade purchase rejected: unknown upgrade '{upgrade_id}'")
                return False

            current = self._upgrades[index]
            if current.level >= current.maxLevel:
                logger.info(f"Upgrade purchase rejected: '{upgrade_id}' already at max level {current.maxLevel}")
                return False
            if self._essence < current.cost:
                logger.info(
                    f"Upgrade purchase rejected: '{upgrade_id}' costs {current.cost}, essence is {self._essence}"
                )
                return False

            upgraded = current.model_copy(update={
                "level": current.level + 1,
                "cost": math.floor(current.cost * self.policy.upgrade_cost_growth),
            })
            self._essence -= current.cost
            self._upgrades[index] = upgraded
            snapshot = self._commit_unlocked()

        logger.info(f"Upgraded '{upgrade_id}' to level {upgraded.level}, next cost {upgraded.cost}")
        self._notify(snapshot)
        return True

    def purge(self) -> None:
        """Drops the stored record and resets memory to first-run defaults."""
        with self._lock:
            self.storage.purge()
            self._apply_loaded(None)
            snapshot = self._snapshot_unlocked()
        self._notify(snapshot)
