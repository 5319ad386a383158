"""
Configuration management for the Ban Watch service.

Loads configuration from environment variables with sensible defaults.
"""

import os
from dataclasses import dataclass


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Config:
    """Application configuration."""

    # Environment
    environment: str = os.getenv("ENVIRONMENT", "development")

    # Ranked API Configuration
    ranked_api_base_url: str = os.getenv("RANKED_API_BASE_URL", "https://www.geoguessr.com/api")
    # Session cookie value, sent as _ncfa=<value>; obtained outside this service
    ranked_api_cookie: str = os.getenv("RANKED_API_COOKIE", "")
    request_timeout: float = float(os.getenv("REQUEST_TIMEOUT", "12"))

    # Rate Limiting
    max_requests_per_minute: int = int(os.getenv("MAX_REQUESTS_PER_MINUTE", "600"))

    # Retry Configuration (seconds; delay = base + step * attempt)
    max_retries: int = int(os.getenv("MAX_RETRIES", "3"))
    rate_limit_backoff_base: float = float(os.getenv("RATE_LIMIT_BACKOFF_BASE", "15"))
    rate_limit_backoff_step: float = float(os.getenv("RATE_LIMIT_BACKOFF_STEP", "5"))
    rate_limit_backoff_max: float = float(os.getenv("RATE_LIMIT_BACKOFF_MAX", "45"))
    not_found_backoff_base: float = float(os.getenv("NOT_FOUND_BACKOFF_BASE", "2"))
    not_found_backoff_step: float = float(os.getenv("NOT_FOUND_BACKOFF_STEP", "1"))
    transient_backoff_base: float = float(os.getenv("TRANSIENT_BACKOFF_BASE", "3"))
    transient_backoff_step: float = float(os.getenv("TRANSIENT_BACKOFF_STEP", "2"))

    # Leaderboard snapshot
    leaderboard_limit: int = int(os.getenv("LEADERBOARD_LIMIT", "2000"))
    leaderboard_page_size: int = int(os.getenv("LEADERBOARD_PAGE_SIZE", "100"))
    leaderboard_page_delay: float = float(os.getenv("LEADERBOARD_PAGE_DELAY", "0.075"))
    leaderboard_rate_limit_cooldown: float = float(os.getenv("LEADERBOARD_RATE_LIMIT_COOLDOWN", "15"))
    leaderboard_max_cooldowns_per_page: int = int(os.getenv("LEADERBOARD_MAX_COOLDOWNS_PER_PAGE", "10"))

    # Probe batches: players per batch, sleep between batches, stagger between probes in a batch
    # Priority pass: players that just dropped off the leaderboard
    priority_batch_size: int = int(os.getenv("PRIORITY_BATCH_SIZE", "12"))
    priority_batch_delay: float = float(os.getenv("PRIORITY_BATCH_DELAY", "0.12"))
    priority_batch_stagger: float = float(os.getenv("PRIORITY_BATCH_STAGGER", "0.035"))
    priority_decay_every: int = int(os.getenv("PRIORITY_DECAY_EVERY", "3"))
    # Full pass: everybody currently listed
    full_batch_size: int = int(os.getenv("FULL_BATCH_SIZE", "15"))
    full_batch_delay: float = float(os.getenv("FULL_BATCH_DELAY", "0.15"))
    full_batch_stagger: float = float(os.getenv("FULL_BATCH_STAGGER", "0.03"))
    full_decay_every: int = int(os.getenv("FULL_DECAY_EVERY", "5"))
    # Re-verification pass: players we already hold as banned/suspended
    reverify_batch_size: int = int(os.getenv("REVERIFY_BATCH_SIZE", "8"))
    reverify_batch_delay: float = float(os.getenv("REVERIFY_BATCH_DELAY", "0.2"))
    reverify_batch_stagger: float = float(os.getenv("REVERIFY_BATCH_STAGGER", "0.075"))
    reverify_decay_every: int = int(os.getenv("REVERIFY_DECAY_EVERY", "5"))

    # Candidate selection windows
    missing_min_hours: int = int(os.getenv("MISSING_MIN_HOURS", "1"))
    missing_max_hours: int = int(os.getenv("MISSING_MAX_HOURS", "24"))
    reverify_window_days: int = int(os.getenv("REVERIFY_WINDOW_DAYS", "7"))
    # A gap longer than this since the last check counts as a restart (stale state)
    restart_gap_hours: float = float(os.getenv("RESTART_GAP_HOURS", "3"))
    rating_history_limit: int = int(os.getenv("RATING_HISTORY_LIMIT", "30"))

    # Scheduling
    check_interval_seconds: int = int(os.getenv("CHECK_INTERVAL_SECONDS", "3600"))
    first_check_delay_seconds: float = float(os.getenv("FIRST_CHECK_DELAY_SECONDS", "1"))
    # How long shutdown waits for a running check to save and notify
    shutdown_timeout_seconds: float = float(os.getenv("SHUTDOWN_TIMEOUT_SECONDS", "120"))

    # Storage
    state_file: str = os.getenv("STATE_FILE", "data/player_tracking.json")
    audit_dir: str = os.getenv("AUDIT_DIR", "data")

    # Discord notifications (empty webhook -> log only)
    discord_ban_webhook_url: str = os.getenv("DISCORD_BAN_WEBHOOK_URL", "")
    discord_unban_webhook_url: str = os.getenv("DISCORD_UNBAN_WEBHOOK_URL", "")
    ban_role_id: str = os.getenv("BAN_ROLE_ID", "")
    unban_role_id: str = os.getenv("UNBAN_ROLE_ID", "")
    announce_unsuspensions: bool = _env_bool("ANNOUNCE_UNSUSPENSIONS")
    profile_url_template: str = os.getenv("PROFILE_URL_TEMPLATE", "https://www.geoguessr.com/user/{entity_id}")
    notify_timeout: float = float(os.getenv("NOTIFY_TIMEOUT", "10"))

    # Command surface
    api_enabled: bool = _env_bool("API_ENABLED", "true")
    api_host: str = os.getenv("API_HOST", "0.0.0.0")
    api_port: int = int(os.getenv("API_PORT", "8000"))

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    log_format: str = os.getenv("LOG_FORMAT", "json")  # json or text

    def validate(self):
        """Validate configuration."""
        errors = []

        if not self.ranked_api_cookie or self.ranked_api_cookie == "YOUR_NCFA_COOKIE_HERE":
            errors.append("RANKED_API_COOKIE is required")
        if self.max_retries < 0:
            errors.append("MAX_RETRIES must be >= 0")
        for name in ("priority_batch_size", "full_batch_size", "reverify_batch_size", "leaderboard_page_size"):
            if getattr(self, name) < 1:
                errors.append(f"{name.upper()} must be >= 1")
        if self.missing_min_hours > self.missing_max_hours:
            errors.append("MISSING_MIN_HOURS must not exceed MISSING_MAX_HOURS")

        if errors:
            raise ValueError(f"Configuration errors: {', '.join(errors)}")

        return True

    def __post_init__(self):
        """Validate after initialization."""
        self.ranked_api_base_url = self.ranked_api_base_url.rstrip("/")
        self.validate()
