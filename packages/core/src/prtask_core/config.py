import os
from pathlib import Path
from typing import Optional

import yaml

DEFAULT_UPDATE_CHECK: dict = {
    "enabled": True,
    "interval_hours": 24,
    "notify_prereleases": False,
    "timeout_seconds": 5,
    "state_path": None,  # None = <store_path>/update_check.json for the json store, else .prtask_update.json
}

DEFAULT_CONFIG: dict = {
    "model": "anthropic",
    "anthropic_model": None,  # None = AnthropicAnalyzer.MODEL
    "openai_model": None,  # None = OpenAIAnalyzer.MODEL
    "request_timeout_seconds": 120,
    "store": "json",  # json | sqlite | memory
    "store_path": None,  # None = backend default (.pr-review for json, .prtask.db for sqlite)
    "batch_size": 5,
    "large_review_threshold": 30,  # at or above this many uncached comments, use large_review_batch_size
    "large_review_batch_size": 3,
    "max_batches": 0,  # 0 = process every batch in one run
    "batch_delay_seconds": 0.5,
    "max_retries": 3,
    "timeout_minutes": 10,
    "max_chars_per_comment": 8000,
    "user_language": "English",
    "low_priority_patterns": ["nit:", "nits:", "minor:", "suggestion:", "consider:", "optional:", "style:"],
    "nitpick_priority": "low",
    "deduplicate": True,  # drop near-duplicate tasks within one comment
    "similarity_threshold": 0.8,  # word-set Jaccard at or above this counts as a duplicate
    "update_check": DEFAULT_UPDATE_CHECK,
}


def load_config(config_path: str = ".prtask.yml", cli_overrides: Optional[dict] = None) -> dict:
    """
    Load configuration by merging (in order of precedence):
      1. Built-in defaults
      2. .prtask.yml in the current directory
      3. CLI argument overrides
    """
    config = {
        **DEFAULT_CONFIG,
        "low_priority_patterns": list(DEFAULT_CONFIG["low_priority_patterns"]),
        "update_check": dict(DEFAULT_UPDATE_CHECK),
    }

    path = Path(config_path)
    if path.exists():
        with open(path) as f:
            file_config = yaml.safe_load(f) or {}
        if not isinstance(file_config, dict):
            raise ValueError(f"{config_path} must contain a YAML mapping, got {type(file_config).__name__}.")
        update_check = file_config.pop("update_check", None)
        if update_check is None:
            update_check = {}
        if not isinstance(update_check, dict):
            raise ValueError(
                f"update_check in {config_path} must be a YAML mapping, got {type(update_check).__name__}."
            )
        config.update(file_config)
        config["update_check"].update(update_check)

    if cli_overrides:
        for key, value in cli_overrides.items():
            if value is not None:
                config[key] = value

    # Resolve credentials from environment variables
    config["github_token"] = os.environ.get("GITHUB_TOKEN")
    config["anthropic_api_key"] = os.environ.get("ANTHROPIC_API_KEY")
    config["openai_api_key"] = os.environ.get("OPENAI_API_KEY")

    if os.environ.get("PRTASK_NO_UPDATE_CHECK"):
        config["update_check"]["enabled"] = False

    return config


def update_state_path(config: dict) -> Path:
    """Where the background update check keeps its last-checked timestamp."""
    explicit = config["update_check"].get("state_path")
    if explicit:
        return Path(explicit)
    if config.get("store", "json") == "json":
        return Path(config.get("store_path") or ".pr-review") / "update_check.json"
    return Path(".prtask_update.json")
