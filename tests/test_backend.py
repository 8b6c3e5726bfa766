import threading

from cyber_hub.llm_client import MaxRetryErrorsException

from conftest import AUDIT_REPLY, SYNTHESIS_REPLY, FakeImageLlm, FakeLlm


def request(backend, request_type, **payload):
    return backend._process_request_data({"type": request_type, "payload": payload})


# =============================================================================
# Registry requests
# =============================================================================

def test_load_hub_first_run(backend_factory):
    response = request(backend_factory(), "load_hub")
    assert response["status"] == "success"
    data = response["data"]
    assert data["inventions"] == []
    assert data["essence"] == 1000
    assert [u["id"] for u in data["upgrades"]] == ["scanner", "processor"]
    assert data["in_flight"] == []
    assert data["synthesis_formats"] == ["Tactical Brief", "Community Post", "Technical Whitepaper"]


def test_list_inventions_sorted(backend_factory, state):
    low = state.create_invention({"name": "Low"}, scores=(61, 50, 70))
    high = state.create_invention({"name": "High"}, scores=(89, 50, 70))
    backend = backend_factory()

    asc = request(backend, "list_inventions", sort="stability-asc")["data"]["inventions"]
    assert [inv["id"] for inv in asc] == [low, high]
    default = request(backend, "list_inventions")["data"]["inventions"]
    assert [inv["id"] for inv in default] == [high, low]


def test_bad_sort_order_is_reported(backend_factory):
    response = request(backend_factory(), "list_inventions", sort="sideways")
    assert response["status"] == "error"
    assert "Unknown sort order" in response["message"]


def test_invention_detail_includes_analytics(backend_factory, state):
    inv_id = state.create_invention({"name": "Widget"})
    data = request(backend_factory(), "invention_detail", id=inv_id)["data"]
    assert data["invention"]["name"] == "Widget"
    # 9-char id + 6-char name -> seed 15
    assert data["analytics"]["confidence"] == 90
    assert data["analytics"]["suggestions"][0] == "Enable Bio-metric Verification"


def test_invention_detail_unknown(backend_factory):
    response = request(backend_factory(), "invention_detail", id="nope")
    assert response["status"] == "error"
    assert "Invention not found" in response["message"]


def test_resonate_and_notes(backend_factory, state):
    inv_id = state.create_invention({"name": "Widget"})
    backend = backend_factory()

    assert request(backend, "resonate", id=inv_id)["data"]["resonance"] == 1
    assert request(backend, "update_notes", id=inv_id, notes="")["status"] == "success"
    request(backend, "update_notes", id=inv_id, notes="field test ok")
    assert state.get_invention(inv_id).notes == "field test ok"


def test_resonate_unknown_id_is_quiet(backend_factory):
    response = request(backend_factory(), "resonate", id="ghost")
    assert response["status"] == "success"
    assert response["data"]["resonance"] is None


def test_missing_id_is_an_error(backend_factory):
    response = request(backend_factory(), "resonate")
    assert response["status"] == "error"
    assert "Missing 'id'" in response["message"]


def test_unknown_request_type(backend_factory):
    response = request(backend_factory(), "teleport")
    assert response["status"] == "error"
    assert response["message"] == "Unknown request type: teleport"


def test_non_object_payload(backend_factory):
    response = backend_factory()._process_request_data({"type": "resonate", "payload": ["x"]})
    assert response["status"] == "error"


# =============================================================================
# Synthesis
# =============================================================================

def test_synthesize_creates_invention_at_head(backend_factory, state):
    older = state.create_invention({"name": "Older"})
    backend = backend_factory(synthesis_llm=FakeLlm(SYNTHESIS_REPLY))

    response = request(backend, "synthesize", prompt="lattice covert channels", format="Technical Whitepaper")

    assert response["status"] == "success"
    created = response["data"]["invention"]
    assert created["name"] == "Ghost Protocol"
    assert created["description"] == "A lattice-based covert channel."
    assert created["category"] == "Cryptanalysis"
    assert created["tags"] == ["LATTICE", "COVERT"]
    assert created["status"] == "Prototype"
    assert 60 <= created["quantumStability"] < 90
    assert [inv.id for inv in state.inventions()] == [created["id"], older]


def test_synthesize_fills_missing_reply_fields(backend_factory, state):
    backend = backend_factory(synthesis_llm=FakeLlm({}))
    created = request(backend, "synthesize", prompt="anything")["data"]["invention"]
    assert created["name"] == "Untitled Discovery"
    assert created["description"] == ""
    assert created["category"] == "Classified Tech"
    assert created["tags"] == ["CYBER", "QUANTUM"]


def test_synthesize_default_format(backend_factory):
    llm = FakeLlm(SYNTHESIS_REPLY)
    request(backend_factory(synthesis_llm=llm), "synthesize", prompt="p")
    assert "Format: Tactical Brief." in llm.prompts[0]


def test_synthesize_unknown_format(backend_factory):
    llm = FakeLlm(SYNTHESIS_REPLY)
    response = request(backend_factory(synthesis_llm=llm), "synthesize", prompt="p", format="Haiku")
    assert response["status"] == "error"
    assert llm.prompts == []


def test_synthesize_empty_prompt_never_calls_the_model(backend_factory):
    llm = FakeLlm()
    response = request(backend_factory(synthesis_llm=llm), "synthesize", prompt="")
    assert response["status"] == "error"
    assert llm.prompts == []


def test_synthesize_failure_changes_nothing(backend_factory, state, store):
    before = store.get_item("quantum_cyber_hub_v3")
    backend = backend_factory(synthesis_llm=FakeLlm(MaxRetryErrorsException("All 1 attempts failed: 503")))

    response = request(backend, "synthesize", prompt="p")

    assert response["status"] == "error"
    assert "Synthesis failed" in response["message"]
    assert state.inventions() == []
    assert store.get_item("quantum_cyber_hub_v3") == before
    assert backend.in_flight() == []


# =============================================================================
# Audit
# =============================================================================

def test_audit_success_credits_reward(backend_factory, state):
    backend = backend_factory(audit_llm=FakeLlm(AUDIT_REPLY))
    response = request(backend, "audit", subject="legacy VPN concentrator")
    assert response["status"] == "success"
    assert response["data"]["audit"]["riskLevel"] == "High"
    assert response["data"]["reward"] == 75
    assert response["data"]["essence"] == 1075
    assert state.essence == 1075


def test_audit_failure_credits_nothing(backend_factory, state):
    backend = backend_factory(audit_llm=FakeLlm("not even close to json"))
    response = request(backend, "audit", subject="x")
    assert response["status"] == "error"
    assert state.essence == 1000
    assert backend.in_flight() == []


# =============================================================================
# Manifestation
# =============================================================================

def test_manifest_creates_visual_invention(backend_factory, state):
    backend = backend_factory(image_llm=FakeImageLlm("data:image/png;base64,QUFB"))
    prompt = "chrome gauntlet with plasma veins"

    created = request(backend, "manifest", prompt=prompt)["data"]["invention"]

    assert created["name"] == "Manifestation: chrome gauntlet with..."
    assert created["description"] == 'Visual manifestation based on neural prompt: "chrome gauntlet with plasma veins"'
    assert created["category"] == "Visual Asset"
    assert created["tags"] == ["MANIFESTED", "VISUAL", "QUANTUM"]
    assert (created["quantumStability"], created["energyOutput"], created["cyberSync"]) == (85, 70, 90)
    assert created["imageUrl"] == "data:image/png;base64,QUFB"
    assert state.inventions()[0].id == created["id"]


def test_manifest_short_prompt_name(backend_factory):
    backend = backend_factory(image_llm=FakeImageLlm("https://img.example/1.png"))
    created = request(backend, "manifest", prompt="orb")["data"]["invention"]
    assert created["name"] == "Manifestation: orb..."


def test_manifest_failure(backend_factory, state):
    backend = backend_factory(image_llm=FakeImageLlm(RuntimeError("quota")))
    response = request(backend, "manifest", prompt="orb")
    assert response["status"] == "error"
    assert state.inventions() == []


# =============================================================================
# Threat feed / upgrades / purge
# =============================================================================

def test_threat_feed(backend_factory):
    reply = {"threats": [{"title": "t", "severity": "High", "summary": "s", "sources": []}]}
    response = request(backend_factory(threat_llm=FakeLlm(reply)), "threat_feed")
    assert response["data"]["threats"][0]["severity"] == "High"


def test_threat_feed_failure(backend_factory):
    response = request(backend_factory(), "threat_feed")
    assert response["status"] == "error"


def test_purchase_upgrade_request(backend_factory):
    backend = backend_factory()
    data = request(backend, "purchase_upgrade", upgrade_id="scanner")["data"]
    assert data["purchased"] is True
    assert data["essence"] == 900
    assert data["upgrade"]["level"] == 2
    assert data["upgrade"]["cost"] == 160


def test_purchase_upgrade_rejected_request(backend_factory, state):
    backend = backend_factory()
    while state.purchase_upgrade("processor"):
        pass
    essence = state.essence
    response = request(backend, "purchase_upgrade", upgrade_id="processor")
    assert response["status"] == "success"
    assert response["data"]["purchased"] is False
    assert response["data"]["essence"] == essence


def test_purge_request(backend_factory, state, store):
    state.create_invention({"name": "Widget"})
    state.credit_essence(75)
    response = request(backend_factory(), "purge")
    assert response["data"]["essence"] == 1000
    assert response["data"]["inventions"] == []
    assert store.get_item("quantum_cyber_hub_v3") is None


# =============================================================================
# In-flight flags
# =============================================================================

class BlockingLlm:
    def __init__(self, reply):
        self.reply = reply
        self.entered = threading.Event()
        self.release = threading.Event()

    def invoke(self, prompt, *, retries=1):
        self.entered.set()
        assert self.release.wait(timeout=5)
        return self.reply


def test_same_kind_is_busy_while_pending_other_kinds_run(backend_factory, state):
    import json

    blocking = BlockingLlm(json.dumps(SYNTHESIS_REPLY))
    backend = backend_factory(synthesis_llm=blocking, audit_llm=FakeLlm(AUDIT_REPLY))
    results = {}

    worker = threading.Thread(target=lambda: results.setdefault("first", request(backend, "synthesize", prompt="p")))
    worker.start()
    assert blocking.entered.wait(timeout=5)

    assert backend.in_flight() == ["synthesize"]
    second = request(backend, "synthesize", prompt="p")
    assert second["status"] == "busy"

    audit = request(backend, "audit", subject="x")
    assert audit["status"] == "success"

    blocking.release.set()
    worker.join(timeout=5)

    assert results["first"]["status"] == "success"
    assert backend.in_flight() == []
    assert state.essence == 1075
    assert len(state.inventions()) == 1


def test_synthesize_keeps_empty_tag_list(backend_factory):
    reply = dict(SYNTHESIS_REPLY, tags=[])
    created = request(backend_factory(synthesis_llm=FakeLlm(reply)), "synthesize", prompt="p")["data"]["invention"]
    assert created["tags"] == []
