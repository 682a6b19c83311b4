import os
import logging
import yaml
from dataclasses import dataclass, field, asdict
from typing import Dict, Optional


logger = logging.getLogger(__name__)

CONFIG_ENV = "LIVENESS_KIOSK_CONFIG"
DEFAULT_CONFIG_PATHS = [
    ".liveness-kiosk.yaml",
    "./config.yaml",
    "/etc/liveness-kiosk/config.yaml",
]


@dataclass
class AntiSpoofThresholds:
    high: float = 0.85
    medium: float = 0.70
    low: float = 0.55
    # Consecutive high-confidence real frames required before accepting
    min_real_face_frames: int = 3


@dataclass
class SuspicionSettings:
    history_size: int = 15
    reject_threshold: int = 10
    challenge_threshold: int = 5
    spoof_step: int = 2
    low_confidence_step: int = 1
    decay_step: int = 1
    variance_penalty: int = 3
    # Confidence variance outside [min, max] over a full history is abnormal
    min_variance: float = 0.001
    max_variance: float = 0.1


@dataclass
class ChallengeSettings:
    duration_frames: int = 120  # ~4s @30fps
    bonus_window_frames: int = 90  # ~3s @30fps
    bonus_amount: float = 0.15
    blink_open_confidence: float = 0.6
    blink_closed_confidence: float = 0.3


@dataclass
class WorkflowSettings:
    confirmation_threshold: int = 2
    detection_timeout_ms: int = 30000
    registration_timeout_ms: int = 15000


@dataclass
class SessionSettings:
    # API registry: finished sessions linger this long for a last read
    final_ttl_s: float = 30.0
    idle_ttl_s: float = 600.0
    sweep_interval_s: float = 10.0


SCENARIO_THRESHOLDS: Dict[str, AntiSpoofThresholds] = {
    # More lenient for enrollment
    "registration": AntiSpoofThresholds(0.80, 0.65, 0.50, 2),
    "verification": AntiSpoofThresholds(0.85, 0.70, 0.55, 3),
    "update": AntiSpoofThresholds(0.80, 0.65, 0.50, 2),
    "security_check": AntiSpoofThresholds(0.90, 0.75, 0.60, 5),
}


def thresholds_for(scenario: str) -> AntiSpoofThresholds:
    key = (scenario or "").strip().lower()
    if key not in SCENARIO_THRESHOLDS:
        raise ValueError(f"unknown scenario: {scenario!r}")
    return AntiSpoofThresholds(**asdict(SCENARIO_THRESHOLDS[key]))


@dataclass
class AppConfig:
    scenario: str = "verification"
    thresholds: AntiSpoofThresholds = field(default_factory=AntiSpoofThresholds)
    suspicion: SuspicionSettings = field(default_factory=SuspicionSettings)
    challenge: ChallengeSettings = field(default_factory=ChallengeSettings)
    workflow: WorkflowSettings = field(default_factory=WorkflowSettings)
    sessions: SessionSettings = field(default_factory=SessionSettings)
    log_level: str = "INFO"

    @classmethod
    def for_scenario(cls, scenario: str) -> "AppConfig":
        thr = thresholds_for(scenario)
        return cls(scenario=scenario.strip().lower(), thresholds=thr)

    def to_dict(self) -> dict:
        return asdict(self)


def _merge_dict(d: dict, u: dict) -> dict:
    for k, v in u.items():
        if isinstance(v, dict) and isinstance(d.get(k), dict):
            d[k] = _merge_dict(d[k], v)
        else:
            d[k] = v
    return d


def config_from_dict(data: dict, base: Optional[AppConfig] = None) -> AppConfig:
    if not isinstance(data, dict):
        raise TypeError("config root must be a mapping")
    cfg = base or AppConfig()
    # Scenario preset first, explicit threshold keys override it
    if "scenario" in data:
        scenario = data["scenario"]
        cfg = AppConfig(
            scenario=str(scenario).strip().lower(),
            thresholds=thresholds_for(scenario),
            suspicion=cfg.suspicion,
            challenge=cfg.challenge,
            workflow=cfg.workflow,
            sessions=cfg.sessions,
            log_level=cfg.log_level,
        )
    merged = _merge_dict(cfg.to_dict(), data)
    return AppConfig(
        scenario=cfg.scenario,
        thresholds=AntiSpoofThresholds(**merged.get("thresholds", {})),
        suspicion=SuspicionSettings(**merged.get("suspicion", {})),
        challenge=ChallengeSettings(**merged.get("challenge", {})),
        workflow=WorkflowSettings(**merged.get("workflow", {})),
        sessions=SessionSettings(**merged.get("sessions", {})),
        log_level=str(merged.get("log_level", cfg.log_level)).upper(),
    )


def load_config(path: Optional[str] = None) -> AppConfig:
    cfg = AppConfig()
    env = os.environ.get(CONFIG_ENV, "")
    candidates = [path] if path else [p for p in [env] + DEFAULT_CONFIG_PATHS if p]
    for p in candidates:
        if not os.path.exists(p):
            continue
        try:
            with open(p, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
            cfg = config_from_dict(data, cfg)
        except (OSError, yaml.YAMLError, TypeError, ValueError) as exc:
            # Fall back to defaults on parse errors
            logger.warning("Ignoring config %s: %s", p, exc)
    return cfg
