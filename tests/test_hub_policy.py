import pytest

from cyber_hub.hub_policy import INITIAL_UPGRADES, HubPolicy, load_hub_policy


def test_defaults_without_file():
    policy = load_hub_policy(None)
    assert policy.initial_essence == 1000
    assert policy.audit_reward == 75
    assert policy.stability_range == (60, 90)
    assert policy.manifest_scores == (85, 70, 90)


def test_commented_override_file(tmp_path):
    cfg = tmp_path / "policy.jsonc"
    cfg.write_text(
        """
        {
            // tighter economy for the demo booth
            "audit_reward": 50,
            "stability_range": [40, 60],
            "manifest_scores": [90, 90, 90]
        }
        """,
        encoding="utf-8",
    )
    policy = load_hub_policy(str(cfg))
    assert policy.audit_reward == 50
    assert policy.stability_range == (40, 60)
    assert policy.manifest_scores == (90, 90, 90)
    assert policy.initial_essence == 1000


def test_unknown_key_fails_fast(tmp_path):
    cfg = tmp_path / "policy.jsonc"
    cfg.write_text('{"warp_factor": 9}', encoding="utf-8")
    with pytest.raises(ValueError, match="warp_factor"):
        load_hub_policy(str(cfg))


def test_bad_range_fails_fast(tmp_path):
    cfg = tmp_path / "policy.jsonc"
    cfg.write_text('{"sync_range": [90, 70]}', encoding="utf-8")
    with pytest.raises(ValueError, match="sync_range"):
        load_hub_policy(str(cfg))


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_hub_policy(str(tmp_path / "nope.jsonc"))


def test_fresh_upgrades_are_independent_copies():
    policy = HubPolicy()
    upgrades = policy.fresh_upgrades()
    upgrades[0]["level"] = 9
    assert policy.fresh_upgrades()[0]["level"] == 1
    assert INITIAL_UPGRADES[0]["level"] == 1
