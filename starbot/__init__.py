"""Starbot package.

Announces Star Realms activity to a Telegram chat:
- config: environment, logging and the Config class
- http: session and request helpers
- models: activity snapshot records
- api: Star Realms activity client
- state: change tracking across polls
- watchers: adaptive poll loop
- formatting: message building utilities
- commands: chat command handlers
- app: application bootstrap and wiring

Public facade (re-export) for tests and callers.
"""

__version__ = "0.3.0"

from .config import Config, logger
from .http import make_session, fetch_json, post_form, build_headers
from .models import (
    ActivityChanges,
    ActivitySnapshot,
    ChallengeRecord,
    ClientData,
    FinishedGameRecord,
    GameRecord,
)
from .api import StarRealmsClient
from .state import ChangeTracker
from .watchers import PollLoop, poll_interval
from .formatting import (
    fmt_turn,
    fmt_challenge,
    fmt_challenge_listing,
    fmt_finished,
    fmt_changes,
)
from .commands import (
    match_command,
    respond,
    show_turns,
    show_challenges,
    text_cmd,
    start_cmd,
    turns_cmd,
    chal_cmd,
    version_cmd,
)
from .app import main, startup, post_init, make_notifier, build_application, StartupError

__all__ = [
    "__version__",
    # Config / HTTP
    "Config", "logger", "make_session", "fetch_json", "post_form", "build_headers",
    # Models / API
    "ActivityChanges", "ActivitySnapshot", "ChallengeRecord", "ClientData", "FinishedGameRecord", "GameRecord",
    "StarRealmsClient",
    # Tracking / polling
    "ChangeTracker", "PollLoop", "poll_interval",
    # Formatting
    "fmt_turn", "fmt_challenge", "fmt_challenge_listing", "fmt_finished", "fmt_changes",
    # Commands / App
    "match_command", "respond", "show_turns", "show_challenges",
    "text_cmd", "start_cmd", "turns_cmd", "chal_cmd", "version_cmd",
    "main", "startup", "post_init", "make_notifier", "build_application", "StartupError",
]
