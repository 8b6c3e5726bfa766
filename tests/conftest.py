import json
import random

import pytest

from cyber_hub.backend import Backend
from cyber_hub.content_adapter import ContentAdapter
from cyber_hub.hub_policy import HubPolicy
from cyber_hub.hub_state import HubState
from cyber_hub.hub_storage import HubStorage
from cyber_hub.kv_store import InMemoryKeyValueStore

STORAGE_KEY = "quantum_cyber_hub_v3"


class FakeLlm:
    """Stands in for LlmClient: returns queued replies, raises queued exceptions."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.prompts = []

    def invoke(self, prompt, *, retries=1):
        self.prompts.append(prompt)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if isinstance(reply, (dict, list)):
            return json.dumps(reply)
        return reply


class FakeImageLlm:
    def __init__(self, *replies):
        self.replies = list(replies)
        self.prompts = []

    def generate(self, prompt, *, retries=1):
        self.prompts.append(prompt)
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


AUDIT_REPLY = {
    "riskLevel": "High",
    "encryptionStrength": 42,
    "integrityScore": 67,
    "vulnerabilities": [
        {"type": "Replay", "description": "Tokens can be replayed.", "mitigation": "Add nonces."},
    ],
}

SYNTHESIS_REPLY = {
    "title": "Ghost Protocol",
    "content": "A lattice-based covert channel.",
    "category": "Cryptanalysis",
    "tags": ["LATTICE", "COVERT"],
}


@pytest.fixture
def store():
    return InMemoryKeyValueStore()


@pytest.fixture
def storage(store):
    return HubStorage(store, STORAGE_KEY)


@pytest.fixture
def policy():
    return HubPolicy()


@pytest.fixture
def state(storage, policy):
    return HubState(storage, policy, rng=random.Random(7))


def make_backend(state, **clients):
    adapter = ContentAdapter(
        audit_llm=clients.get("audit_llm"),
        synthesis_llm=clients.get("synthesis_llm"),
        image_llm=clients.get("image_llm"),
        threat_llm=clients.get("threat_llm"),
    )
    return Backend(state, adapter)


@pytest.fixture
def backend_factory(state):
    def _factory(**clients):
        return make_backend(state, **clients)
    return _factory
