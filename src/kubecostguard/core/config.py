# src/kubecostguard/core/config.py

import logging
import os
import re

from dotenv import load_dotenv

# Load environment variables from a .env file located in the project root
dotenv_path = os.path.join(os.path.dirname(__file__), "..", "..", "..", ".env")
load_dotenv(dotenv_path=dotenv_path)


def _env_list(key: str, default: str) -> list:
    raw = os.getenv(key, default)
    return [item.strip() for item in raw.split(",") if item.strip()]


class Config:
    """
    Handles the application's configuration by loading values from environment variables.
    """

    # --- Fixed conversion ---
    HOURS_PER_MONTH = 720

    # --- Logging variables ---
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # --- Kubernetes ---
    # Context to select from the local kubeconfig; empty means its current context.
    KUBE_CONTEXT = os.getenv("KUBE_CONTEXT") or None

    # --- Pricing ---
    # Empty means the built-in default pricing table is used.
    PRICING_CONFIG_PATH = os.getenv("PRICING_CONFIG_PATH", "")

    # --- Monitoring loop ---
    MONITOR_INTERVAL = os.getenv("MONITOR_INTERVAL", "5m")
    CYCLE_TIMEOUT_SECONDS = float(os.getenv("CYCLE_TIMEOUT_SECONDS", "120"))

    # --- Health thresholds ---
    API_LATENCY_THRESHOLD_MS = float(os.getenv("API_LATENCY_THRESHOLD_MS", "1000"))
    HIGH_USAGE_THRESHOLD = float(os.getenv("HIGH_USAGE_THRESHOLD", "80"))
    CRITICAL_USAGE_THRESHOLD = float(os.getenv("CRITICAL_USAGE_THRESHOLD", "95"))
    RESTART_THRESHOLD = int(os.getenv("RESTART_THRESHOLD", "5"))

    # --- Optimization thresholds (fractions, 0.0 to 1.0) ---
    LOW_UTILIZATION_THRESHOLD = float(os.getenv("LOW_UTILIZATION_THRESHOLD", "0.2"))
    IDLE_UTILIZATION_THRESHOLD = float(os.getenv("IDLE_UTILIZATION_THRESHOLD", "0.02"))
    RIGHTSIZING_HEADROOM = float(os.getenv("RIGHTSIZING_HEADROOM", "0.2"))

    # --- Cleanup ---
    STALE_POD_RETENTION_DAYS = int(os.getenv("STALE_POD_RETENTION_DAYS", "7"))
    CLEANUP_PROTECTED_CONFIGMAPS = _env_list("CLEANUP_PROTECTED_CONFIGMAPS", "kube-root-ca.crt")

    # --- Forecasting ---
    HISTORY_WINDOW_SIZE = int(os.getenv("HISTORY_WINDOW_SIZE", "24"))
    FORECAST_HORIZON_HOURS = float(os.getenv("FORECAST_HORIZON_HOURS", "720"))

    # --- Telemetry ---
    OTEL_EXPORTER_OTLP_ENDPOINT = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4318")

    def validate_instance(self):
        parse_interval(self.MONITOR_INTERVAL)
        if self.CYCLE_TIMEOUT_SECONDS <= 0:
            raise ValueError("CYCLE_TIMEOUT_SECONDS must be positive.")
        for name in ("LOW_UTILIZATION_THRESHOLD", "IDLE_UTILIZATION_THRESHOLD"):
            value = getattr(self, name)
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"{name} must be between 0.0 and 1.0.")
        if self.IDLE_UTILIZATION_THRESHOLD > self.LOW_UTILIZATION_THRESHOLD:
            raise ValueError("IDLE_UTILIZATION_THRESHOLD must not exceed LOW_UTILIZATION_THRESHOLD.")
        if self.RIGHTSIZING_HEADROOM < 0:
            raise ValueError("RIGHTSIZING_HEADROOM must not be negative.")
        if self.HIGH_USAGE_THRESHOLD > self.CRITICAL_USAGE_THRESHOLD:
            raise ValueError("HIGH_USAGE_THRESHOLD must not exceed CRITICAL_USAGE_THRESHOLD.")
        if self.HISTORY_WINDOW_SIZE < 2:
            logging.getLogger(__name__).warning(
                "HISTORY_WINDOW_SIZE=%s is too small for trend forecasting.", self.HISTORY_WINDOW_SIZE
            )


def parse_interval(interval_str: str) -> int:
    """Converts a duration string like '30s', '5m' or '1h' into seconds."""
    match = re.match(r"^(\d+)([smh])$", interval_str.strip().lower())
    if not match:
        raise ValueError(f"Invalid interval format: '{interval_str}'. Use 's', 'm', or 'h'.")
    value, unit = int(match.group(1)), match.group(2)
    multipliers = {"s": 1, "m": 60, "h": 3600}
    seconds = value * multipliers[unit]
    if seconds <= 0:
        raise ValueError(f"Interval must be positive: '{interval_str}'.")
    return seconds


# Instantiate the config to be imported by other modules
config = Config()
config.validate_instance()
