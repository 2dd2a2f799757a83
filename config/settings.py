"""
Multi-Source Interaction Consensus Engine - Configuration Settings
"""
import os
from pathlib import Path

# Base paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = BASE_DIR / "data"
PERSISTED_RESULTS_PATH = Path(
    os.getenv("PERSISTED_RESULTS_PATH", str(DATA_DIR / "interaction_results.json"))
)

# Provider endpoints
RXNORM_API_URL = os.getenv("RXNORM_API_URL", "https://rxnav.nlm.nih.gov/REST")
SUPPAI_API_URL = os.getenv("SUPPAI_API_URL", "https://supp.ai/api")
OPENFDA_API_URL = os.getenv("OPENFDA_API_URL", "https://api.fda.gov")
OPENFDA_API_KEY = os.getenv("OPENFDA_API_KEY", "")
LITERATURE_ANALYSIS_URL = os.getenv(
    "LITERATURE_ANALYSIS_URL", "http://localhost:8888/.netlify/functions/ai-literature-analysis"
)

# Provider names (as reported on RawSourceSignal.provider_name)
RXNORM_PROVIDER = "RxNorm"
SUPPAI_PROVIDER = "SUPP.AI"
FDA_LABEL_PROVIDER = "FDA"
ADVERSE_EVENTS_PROVIDER = "OpenFDA Adverse Events"
LITERATURE_PROVIDER = "AI Literature Analysis"
HIGH_RISK_PROVIDER = "High-Risk Safety Table"
NO_DATA_PROVIDER = "No Data Available"

# Per-provider call timeouts (seconds)
PROVIDER_TIMEOUTS = {
    RXNORM_PROVIDER: float(os.getenv("RXNORM_TIMEOUT", "5")),
    SUPPAI_PROVIDER: float(os.getenv("SUPPAI_TIMEOUT", "5")),
    FDA_LABEL_PROVIDER: float(os.getenv("FDA_LABEL_TIMEOUT", "5")),
    ADVERSE_EVENTS_PROVIDER: float(os.getenv("ADVERSE_EVENTS_TIMEOUT", "6")),
    LITERATURE_PROVIDER: float(os.getenv("LITERATURE_TIMEOUT", "9")),
}
DEFAULT_PROVIDER_TIMEOUT = 5.0
PERSISTED_STORE_TIMEOUT_SECONDS = float(os.getenv("PERSISTED_STORE_TIMEOUT", "2"))

# Source reliability table
# kind: structured | adverse_events | supplement | literature | internal | fallback
PROVIDER_WEIGHTS = {
    RXNORM_PROVIDER: {"kind": "structured", "base_weight": 0.85, "max_weight": 1.0},
    FDA_LABEL_PROVIDER: {"kind": "structured", "base_weight": 0.80, "max_weight": 1.0},
    ADVERSE_EVENTS_PROVIDER: {"kind": "adverse_events", "base_weight": 0.80, "max_weight": 1.0},
    SUPPAI_PROVIDER: {"kind": "supplement", "base_weight": 0.65, "max_weight": 1.0},
    LITERATURE_PROVIDER: {"kind": "literature", "base_weight": 0.50, "max_weight": 0.65},
    HIGH_RISK_PROVIDER: {"kind": "internal", "base_weight": 0.95, "max_weight": 1.0},
}
FALLBACK_PROVIDER_WEIGHT = {"kind": "fallback", "base_weight": 0.40, "max_weight": 1.0}
TRUSTED_SOURCE_KINDS = ("structured", "adverse_events")

# Weight adjustments (applied in this order)
CONFIDENCE_MULTIPLIER_MIN = 0.5      # self-reported confidence 0
CONFIDENCE_MULTIPLIER_MAX = 1.5      # self-reported confidence 100
DEFAULT_SIGNAL_CONFIDENCE = 50       # multiplier 1.0
EVENT_VOLUME_BONUS_PER_EVENT = 0.0005
EVENT_VOLUME_BONUS_CAP = 0.10
SERIOUS_EVENT_BONUS_THRESHOLD = 0.05
SERIOUS_EVENT_BONUS = 0.05
SEVERE_SIGNAL_BOOST = 1.10
UNKNOWN_SIGNAL_PENALTY = 0.60

# Source validation
MIN_DESCRIPTION_LENGTH = 10

# Pair-level adverse-event vote
ADVERSE_EVENT_VOTE_WEIGHT = 0.95
ADVERSE_EVENT_SEVERE_THRESHOLD = 0.05
ADVERSE_EVENT_MINOR_MIN_EVENTS = 10

# Consensus override
SEVERE_OVERRIDE_MIN_WEIGHT = 0.6
SEVERE_OVERRIDE_MIN_SOURCES = 2

# Confidence adjustments (additive, each bounded to [0, 100])
CONFIDENCE_STRONG_AGREEMENT = 0.75
CONFIDENCE_STRONG_AGREEMENT_BONUS = 15
CONFIDENCE_MAJORITY_AGREEMENT = 0.50
CONFIDENCE_MAJORITY_AGREEMENT_BONUS = 10
CONFIDENCE_SOURCE_COUNT_MIN = 3
CONFIDENCE_SOURCE_COUNT_BONUS = 10
CONFIDENCE_TRUSTED_SOURCE_BONUS = 10
CONFIDENCE_LARGE_SAMPLE_EVENTS = 100
CONFIDENCE_LARGE_SAMPLE_BONUS = 5
CONFIDENCE_AI_DIRECT_EVIDENCE_BONUS = 15
CONFIDENCE_AI_AGREEMENT_BONUS = 5
CONFIDENCE_AI_MIN_CORROBORATING = 2  # other votes needed for the direct-evidence bonus
CONFIDENCE_AI_MIN_AGREEING = 1  # other votes needed for the agreement bonus
CONFIDENCE_UNKNOWN_PENALTY = 30
CONFIDENCE_TRUSTED_AGREEMENT_FLOOR = 50
CONFIDENCE_MIN_WITH_SOURCES = 20
HIGH_RISK_CONFIDENCE = 95

# Combination processing
MAX_TRIPLE_COMBINATIONS = 5
MAX_SINGLE_WARNINGS = 3

# Persisted results
PERSISTED_RESULT_STALE_DAYS = int(os.getenv("PERSISTED_RESULT_STALE_DAYS", "30"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Feature Flags
ENABLE_LITERATURE_ANALYSIS = os.getenv("ENABLE_LITERATURE_ANALYSIS", "true").lower() == "true"
ENABLE_PERSISTED_CACHE = os.getenv("ENABLE_PERSISTED_CACHE", "true").lower() == "true"
