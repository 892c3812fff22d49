from pathlib import Path

# Repo-root conventional directories/files (overrideable via CLI flags)
CONFIG_DIR = Path("configs")
SETTINGS_FILE = CONFIG_DIR / "settings.yaml"

LOGS_DIR = Path("logs")
LOG_FILE = LOGS_DIR / "chat-core.log"
REQUEST_LOG_FILE = LOGS_DIR / "requests.jsonl"
