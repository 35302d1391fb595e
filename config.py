"""
Central configuration for the goods receiving workflow.

All paths, backend settings, and receiving defaults are defined here.
Override via environment variables or by passing a Config instance directly.

Settings priority (highest wins):
  1. Environment variables
  2. config/receiving_settings.json  (admin-editable, persisted)
  3. Hardcoded defaults in this file
"""
import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

# Project root (directory containing this file)
PROJECT_ROOT = Path(__file__).parent

# Default data locations (relative to project root)
DEFAULT_PO_CSV         = PROJECT_ROOT / "data" / "purchase_orders.csv"
DEFAULT_PO_LINES_CSV   = PROJECT_ROOT / "data" / "purchase_order_lines.csv"
DEFAULT_OUTPUT_DIR     = PROJECT_ROOT / "output"
DEFAULT_DB_PATH        = DEFAULT_OUTPUT_DIR / "receiving.db"


@dataclass
class Config:
    # --- Backend ---
    # When api_base_url is set, GRNs are committed to the REST backend;
    # otherwise the local SQLite store at db_path is used.
    api_base_url: Optional[str] = field(
        default_factory=lambda: os.getenv("RECEIVING_API_URL")
    )
    api_token: Optional[str] = field(
        default_factory=lambda: os.getenv("RECEIVING_API_TOKEN")
    )
    request_timeout_seconds: int = field(
        default_factory=lambda: int(os.getenv("RECEIVING_API_TIMEOUT", "30"))
    )

    # --- Data source paths ---
    po_csv:         Path = field(default_factory=lambda: DEFAULT_PO_CSV)
    po_lines_csv:   Path = field(default_factory=lambda: DEFAULT_PO_LINES_CSV)

    # --- Output settings ---
    db_path:      Path = field(
        default_factory=lambda: Path(os.getenv("DB_PATH", str(DEFAULT_DB_PATH)))
    )

    # --- Receiving defaults ---
    default_location:        str = field(
        default_factory=lambda: os.getenv("DEFAULT_LOCATION", "WAREHOUSE-A")
    )
    batch_prefix:            str = "BATCH"   # BATCH-{po_number}-{line_id}
    serial_fallback_prefix:  str = "TIR"     # Used when a line has no brand
    require_brand:           bool = field(
        default_factory=lambda: os.getenv("REQUIRE_BRAND", "false").lower() == "true"
    )
    max_serial_attempts:     int = 50        # Retries when a generated batch collides

    def __post_init__(self) -> None:
        """Overlay runtime-tunable settings from receiving_settings.json if present."""
        config_dir = Path(os.getenv("CONFIG_DIR", str(PROJECT_ROOT / "config")))
        settings_file = config_dir / "receiving_settings.json"
        if not settings_file.exists():
            return
        _type_map: dict[str, type] = {
            "api_base_url":             str,
            "request_timeout_seconds":  int,
            "default_location":         str,
            "batch_prefix":             str,
            "serial_fallback_prefix":   str,
            "require_brand":            bool,
            "max_serial_attempts":      int,
        }
        try:
            with open(settings_file, encoding="utf-8") as f:
                overrides = {k: v for k, v in json.load(f).items() if not k.startswith("_")}
            for key, val in overrides.items():
                if key in _type_map and hasattr(self, key):
                    setattr(self, key, _type_map[key](val))
        except Exception as exc:
            logger.warning("Failed to load receiving_settings.json: %s", exc)
