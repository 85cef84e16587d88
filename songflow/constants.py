"""Shared defaults for songflow."""

DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_MAX_POLLS = 60
TITLE_MAX_LENGTH = 50
NOTIFY_TASK_PREVIEW_LENGTH = 100
DEFAULT_WEBHOOK_PATH = "/telegram/webhook"
WEBHOOK_SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"
SUNO_READY_STATUSES = frozenset({"streaming", "complete"})
