# cyber_hub/backend.py

import json
import logging
import threading
import traceback
from contextlib import contextmanager
from typing import Any, Dict, Optional

from cyber_hub import hub_config
from cyber_hub.analytics import generate_deterministic_ai_data
from cyber_hub.content_adapter import ContentAdapter, build_content_adapter
from cyber_hub.hub_policy import SYNTHESIS_FORMATS, HubPolicy, load_hub_policy
from cyber_hub.hub_state import HubState
from cyber_hub.hub_storage import HubStorage
from cyber_hub.kv_store import SqlKeyValueStore
from cyber_hub.models import InventionDraft
from cyber_hub.registry_view import SortOrder

logger = logging.getLogger("cyber_hub")

IN_FLIGHT_KINDS = ("synthesize", "audit", "manifest", "threat_feed")


class RequestError(Exception):
    """Bad request payload; reported back in the error envelope."""


class Backend:
    """
    Turns hub events into HubState mutations and adapter calls.

    One in-flight flag per adapter request kind blocks re-entrant submission
    of the same action; different kinds may run side by side.
    """

    def __init__(self, state: HubState, adapter: ContentAdapter, policy: Optional[HubPolicy] = None):
        self.state = state
        self.adapter = adapter
        self.policy = policy or state.policy
        self._flags_lock = threading.Lock()
        self._in_flight: set[str] = set()

    # -----------------------
    # In-flight flags
    # -----------------------

    @contextmanager
    def _pending(self, kind: str):
        with self._flags_lock:
            if kind in self._in_flight:
                busy = True
            else:
                busy = False
                self._in_flight.add(kind)
        if busy:
            yield False
            return
        try:
            yield True
        finally:
            with self._flags_lock:
                self._in_flight.discard(kind)

    def in_flight(self) -> list[str]:
        with self._flags_lock:
            return sorted(self._in_flight)

    # -----------------------
    # Dispatch
    # -----------------------

    def _process_request_data(self, request_data: dict) -> dict:
        """
        Core request handling logic.
        Takes a parsed event {type, payload} and returns the response envelope.
        """
        request_type = (request_data or {}).get("type")
        payload = (request_data or {}).get("payload") or {}

        try:
            preview = json.dumps(request_data, indent=2)
        except Exception:
            preview = str(request_data)
        logger.debug(f"process_request request {preview}")

        response_data: Dict[str, Any] = {
            "status": "success",
            "message": "",
            "type": request_type,
        }

        handlers = {
            "load_hub": self.handle_load_hub,
            "list_inventions": self.handle_list_inventions,
            "invention_detail": self.handle_invention_detail,
            "resonate": self.handle_resonate,
            "update_notes": self.handle_update_notes,
            "synthesize": self.handle_synthesize,
            "audit": self.handle_audit,
            "manifest": self.handle_manifest,
            "purchase_upgrade": self.handle_purchase_upgrade,
            "purge": self.handle_purge,
            "threat_feed": self.handle_threat_feed,
        }

        handler = handlers.get(request_type)
        if handler is None:
            response_data["status"] = "error"
            response_data["message"] = f"Unknown request type: {request_type}"
            return response_data

        if not isinstance(payload, dict):
            response_data["status"] = "error"
            response_data["message"] = "payload must be a JSON object"
            return response_data

        try:
            handler(payload, response_data)
        except RequestError as e:
            response_data["status"] = "error"
            response_data["message"] = str(e)
        except Exception as e:
            logger.error(f"Error processing request type={request_type}: {e}\n{traceback.format_exc()}")
            response_data["status"] = "error"
            response_data["message"] = f"Internal error while processing {request_type}: {e}"
        return response_data

    # -----------------------
    # Payload helpers
    # -----------------------

    def _require_str(self, payload: dict, key: str, allow_empty: bool = False) -> str:
        value = payload.get(key)
        if not isinstance(value, str):
            raise RequestError(f"Missing '{key}' in payload")
        if not allow_empty and not value.strip():
            raise RequestError(f"'{key}' must not be empty")
        return value

    def _sort_order(self, payload: dict) -> SortOrder:
        try:
            return SortOrder.parse(payload.get("sort"))
        except ValueError as e:
            raise RequestError(str(e))

    def _hub_view(self, order: SortOrder) -> dict:
        snapshot = self.state.snapshot()
        return {
            "inventions": [inv.model_dump(exclude_none=True) for inv in self.state.inventions(order)],
            "essence": snapshot.essence,
            "upgrades": [u.model_dump() for u in snapshot.upgrades or []],
            "in_flight": self.in_flight(),
            "synthesis_formats": list(SYNTHESIS_FORMATS),
        }

    # -----------------------
    # Registry
    # -----------------------

    def handle_load_hub(self, payload: dict, response_data: dict) -> None:
        response_data["data"] = self._hub_view(self._sort_order(payload))

    def handle_list_inventions(self, payload: dict, response_data: dict) -> None:
        order = self._sort_order(payload)
        response_data["data"] = {
            "inventions": [inv.model_dump(exclude_none=True) for inv in self.state.inventions(order)],
            "sort": order.value,
        }

    def handle_invention_detail(self, payload: dict, response_data: dict) -> None:
        invention_id = self._require_str(payload, "id")
        invention = self.state.get_invention(invention_id)
        if invention is None:
            raise RequestError(f"Invention not found: {invention_id}")
        analytics = generate_deterministic_ai_data(invention.id, invention.name)
        response_data["data"] = {
            "invention": invention.model_dump(exclude_none=True),
            "analytics": {"confidence": analytics.confidence, "suggestions": analytics.suggestions},
        }

    def handle_resonate(self, payload: dict, response_data: dict) -> None:
        invention_id = self._require_str(payload, "id")
        self.state.resonate(invention_id)
        invention = self.state.get_invention(invention_id)
        response_data["data"] = {"id": invention_id, "resonance": invention.resonance if invention else None}

    def handle_update_notes(self, payload: dict, response_data: dict) -> None:
        invention_id = self._require_str(payload, "id")
        notes = self._require_str(payload, "notes", allow_empty=True)
        self.state.update_notes(invention_id, notes)
        response_data["message"] = "Notes saved."

    # -----------------------
    # Generative actions
    # -----------------------

    def handle_synthesize(self, payload: dict, response_data: dict) -> None:
        prompt = self._require_str(payload, "prompt")
        report_format = payload.get("format") or SYNTHESIS_FORMATS[0]
        if report_format not in SYNTHESIS_FORMATS:
            raise RequestError(f"Unknown synthesis format '{report_format}'. Known formats: {', '.join(SYNTHESIS_FORMATS)}")

        with self._pending("synthesize") as started:
            if not started:
                response_data["status"] = "busy"
                response_data["message"] = "A synthesis is already in progress."
                return
            result = self.adapter.synthesize_intelligence(prompt, report_format)

        if not result.ok:
            response_data["status"] = "error"
            response_data["message"] = f"Synthesis failed: {result.reason}"
            return

        reply = result.value
        p = self.policy
        draft = InventionDraft(
            name=reply.title or p.default_name,
            description=reply.content or "",
            category=reply.category or p.default_category,
            tags=reply.tags if reply.tags is not None else list(p.default_tags),
        )
        invention_id = self.state.create_invention(draft)
        response_data["data"] = {"invention": self.state.get_invention(invention_id).model_dump(exclude_none=True)}

    def handle_audit(self, payload: dict, response_data: dict) -> None:
        subject = self._require_str(payload, "subject")

        with self._pending("audit") as started:
            if not started:
                response_data["status"] = "busy"
                response_data["message"] = "An audit is already in progress."
                return
            result = self.adapter.perform_security_audit(subject)

        if not result.ok:
            response_data["status"] = "error"
            response_data["message"] = f"Audit failed: {result.reason}"
            return

        self.state.credit_essence(self.policy.audit_reward)
        response_data["data"] = {
            "audit": result.value.model_dump(),
            "reward": self.policy.audit_reward,
            "essence": self.state.essence,
        }

    def handle_manifest(self, payload: dict, response_data: dict) -> None:
        prompt = self._require_str(payload, "prompt")

        with self._pending("manifest") as started:
            if not started:
                response_data["status"] = "busy"
                response_data["message"] = "A manifestation is already in progress."
                return
            result = self.adapter.generate_invention_visual(prompt)

        if not result.ok:
            response_data["status"] = "error"
            response_data["message"] = f"Manifestation failed: {result.reason}"
            return

        p = self.policy
        draft = InventionDraft(
            name=f"Manifestation: {' '.join(prompt.split(' ')[:3])}...",
            description=f'Visual manifestation based on neural prompt: "{prompt}"',
            category=p.manifest_category,
            tags=list(p.manifest_tags),
            imageUrl=result.value,
        )
        invention_id = self.state.create_invention(draft, scores=p.manifest_scores)
        response_data["data"] = {"invention": self.state.get_invention(invention_id).model_dump(exclude_none=True)}

    def handle_threat_feed(self, payload: dict, response_data: dict) -> None:
        with self._pending("threat_feed") as started:
            if not started:
                response_data["status"] = "busy"
                response_data["message"] = "A threat scan is already in progress."
                return
            result = self.adapter.fetch_latest_threats()

        if not result.ok:
            response_data["status"] = "error"
            response_data["message"] = f"Threat feed unavailable: {result.reason}"
            return
        response_data["data"] = {"threats": [t.model_dump() for t in result.value]}

    # -----------------------
    # Core upgrades
    # -----------------------

    def handle_purchase_upgrade(self, payload: dict, response_data: dict) -> None:
        upgrade_id = self._require_str(payload, "upgrade_id")
        purchased = self.state.purchase_upgrade(upgrade_id)
        upgrade = self.state.get_upgrade(upgrade_id)
        if not purchased:
            response_data["message"] = "Upgrade not purchased."
        response_data["data"] = {
            "purchased": purchased,
            "essence": self.state.essence,
            "upgrade": upgrade.model_dump() if upgrade else None,
        }

    def handle_purge(self, payload: dict, response_data: dict) -> None:
        self.state.purge()
        response_data["message"] = "Hub data purged."
        response_data["data"] = self._hub_view(SortOrder.NONE)


def build_backend(database_url: str | None = None) -> Backend:
    """
    Production wiring: SQL-backed storage, policy file, configured model clients.
    """
    store = SqlKeyValueStore(hub_config.get_db_engine(database_url))
    storage = HubStorage(store, hub_config.HUB_STORAGE_KEY)
    policy = load_hub_policy(hub_config.HUB_POLICY_PATH)
    state = HubState(storage, policy)
    return Backend(state, build_content_adapter(), policy)
