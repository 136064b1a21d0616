from __future__ import annotations
import os, json, pathlib, random


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw.strip())
    except ValueError:
        return default


BASELINE_RATING: int = 1000
K_FACTOR: int = 24
MAX_ROUNDS: int = 32
SCHEMA_VERSION: int = 2

MIN_LANE_COVERAGE: int = 2
EXPLORE_PROBABILITY: float = 0.12
TOP_LANES_FOR_FOCUS: int = 3

MIN_SWIPES: int = 18
FINISH_GAP: int = 75
MAX_SKIP_RATE_FOR_STRONG: float = 0.35

STRONG_GAP: int = 80
MEDIUM_GAP: int = 40
EXPLORATORY_SKIP_RATE: float = 0.5

RATING_PLAUSIBLE_MIN: int = 500
RATING_PLAUSIBLE_MAX: int = 1500

# swipe animation window; commits inside it are dropped
SETTLE_MS: int = 350
EARLY_FINISH_ENABLED: bool = True

METRICS_MAX_EVENTS: int = 200
AUDIT_EXPORT_ENABLED: bool = True

CATALOG_MIN_PER_LANE: int = MIN_LANE_COVERAGE

# default file names for the CLI store; the legacy one is read-only
RUN_STATE_FILE: str = "run-state-v1.json"
LEGACY_RUN_STATE_FILE: str = "runState.json"

DEBUG_TRACE: bool = False
DEBUG_SEED: int | None = None
TRACE_FIELDS: tuple[str, ...] = (
    "round",
    "statement_id",
    "lane_id",
    "answer",
    "rating_before",
    "rating_after",
    "next_statement_id",
)
# // env overrides for staging/ops; defaults remain conservative.
MAX_ROUNDS = _env_int("MAX_ROUNDS", MAX_ROUNDS)
EXPLORE_PROBABILITY = _env_float("EXPLORE_PROBABILITY", EXPLORE_PROBABILITY)
SETTLE_MS = _env_int("SETTLE_MS", SETTLE_MS)
EARLY_FINISH_ENABLED = _env_bool("EARLY_FINISH_ENABLED", EARLY_FINISH_ENABLED)
METRICS_MAX_EVENTS = _env_int("METRICS_MAX_EVENTS", METRICS_MAX_EVENTS)
CATALOG_MIN_PER_LANE = _env_int("CATALOG_MIN_PER_LANE", CATALOG_MIN_PER_LANE)
DEBUG_TRACE = _env_bool("DEBUG_TRACE", False)
DEBUG_SEED = _env_int("DEBUG_SEED", None)  # type: ignore[arg-type]
AUDIT_EXPORT_ENABLED = _env_bool("AUDIT_EXPORT_ENABLED", AUDIT_EXPORT_ENABLED)


def load_config() -> dict:
    cfg = {}
    p = pathlib.Path("config.json")
    if p.exists():
        try: cfg = json.loads(p.read_text(encoding="utf-8"))
        except Exception: cfg = {}
    e = os.environ
    if e.get("SEED"):
        try: cfg["SEED"] = int(e.get("SEED"))
        except ValueError: pass
    if e.get("SETTLE_MS"): cfg["SETTLE_MS"] = SETTLE_MS
    if e.get("EARLY_FINISH_ENABLED"): cfg["EARLY_FINISH_ENABLED"] = EARLY_FINISH_ENABLED
    return cfg


def make_rng(seed: int | None = None, cfg: dict | None = None) -> random.Random:
    """Seeded generator for the selector; falls back to DEBUG_SEED then config SEED."""
    if seed is None:
        seed = DEBUG_SEED
    if seed is None and cfg:
        seed = cfg.get("SEED")
    if seed is None:
        return random.Random()
    return random.Random(int(seed))
