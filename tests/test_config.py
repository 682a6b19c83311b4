import pytest

from liveness_kiosk.app.config import AppConfig, config_from_dict, load_config, thresholds_for


def test_defaults_are_verification():
    cfg = AppConfig()
    assert cfg.scenario == "verification"
    assert cfg.thresholds.high == 0.85
    assert cfg.thresholds.min_real_face_frames == 3
    assert cfg.suspicion.history_size == 15
    assert cfg.challenge.duration_frames == 120
    assert cfg.workflow.detection_timeout_ms == 30000


def test_scenario_presets():
    assert thresholds_for("security_check").min_real_face_frames == 5
    assert thresholds_for(" Registration ").high == 0.80
    cfg = AppConfig.for_scenario("update")
    assert cfg.scenario == "update"
    assert cfg.thresholds.low == 0.50
    with pytest.raises(ValueError):
        thresholds_for("bogus")


def test_presets_are_copies():
    thresholds_for("verification").high = 0.1
    assert thresholds_for("verification").high == 0.85


def test_explicit_keys_override_scenario():
    cfg = config_from_dict({"scenario": "security_check", "thresholds": {"high": 0.95}, "log_level": "debug"})
    assert cfg.scenario == "security_check"
    assert cfg.thresholds.high == 0.95
    assert cfg.thresholds.medium == 0.75
    assert cfg.log_level == "DEBUG"


def test_config_from_dict_rejects_non_mapping():
    with pytest.raises(TypeError):
        config_from_dict(["not", "a", "mapping"])


def test_load_config_from_yaml(tmp_path):
    path = tmp_path / "kiosk.yaml"
    path.write_text(
        "scenario: registration\n"
        "workflow:\n"
        "  confirmation_threshold: 3\n"
        "challenge:\n"
        "  bonus_window_frames: 60\n",
        encoding="utf-8",
    )
    cfg = load_config(str(path))
    assert cfg.scenario == "registration"
    assert cfg.thresholds.high == 0.80
    assert cfg.workflow.confirmation_threshold == 3
    assert cfg.workflow.detection_timeout_ms == 30000
    assert cfg.challenge.bonus_window_frames == 60


def test_load_config_from_env(tmp_path, monkeypatch):
    path = tmp_path / "env.yaml"
    path.write_text("suspicion:\n  reject_threshold: 12\n", encoding="utf-8")
    monkeypatch.setenv("LIVENESS_KIOSK_CONFIG", str(path))
    assert load_config().suspicion.reject_threshold == 12


def test_broken_yaml_falls_back_to_defaults(tmp_path):
    path = tmp_path / "broken.yaml"
    path.write_text("thresholds: [unclosed\n", encoding="utf-8")
    cfg = load_config(str(path))
    assert cfg.thresholds.high == 0.85


def test_unknown_keys_fall_back_to_defaults(tmp_path):
    path = tmp_path / "typo.yaml"
    path.write_text("thresholds:\n  hihg: 0.9\n", encoding="utf-8")
    assert load_config(str(path)) == AppConfig()


def test_missing_file_gives_defaults(tmp_path):
    assert load_config(str(tmp_path / "nope.yaml")) == AppConfig()


def test_thresholds_are_the_three_classification_cut_points(tmp_path):
    assert set(AppConfig().to_dict()["thresholds"]) == {"high", "medium", "low", "min_real_face_frames"}
    path = tmp_path / "old.yaml"
    path.write_text("thresholds:\n  very_low: 0.4\n", encoding="utf-8")
    assert load_config(str(path)) == AppConfig()


def test_session_ttls_from_yaml(tmp_path):
    path = tmp_path / "ttl.yaml"
    path.write_text("sessions:\n  final_ttl_s: 5\n", encoding="utf-8")
    cfg = load_config(str(path))
    assert cfg.sessions.final_ttl_s == 5
    assert cfg.sessions.idle_ttl_s == 600.0
