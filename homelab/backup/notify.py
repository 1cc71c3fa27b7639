# Stdlib imports
import datetime
import typing

# Vendor imports
import requests

# Local imports
from . import helper, model

LEVEL_COLORS = {
    "info": 3447003,
    "success": 3066993,
    "warning": 15844367,
    "error": 15158332,
}

TITLE_PREFIXES = {
    "backup": "📦 Backup",
    "restore": "🔄 Restore",
}


class Notifier:
    def __init__(
        self,
        settings: model.HostSettings,
        kind: str = "backup",
        session: typing.Optional[requests.Session] = None,
        timeout: float = 10,
    ):
        self.settings = settings
        self.kind = kind
        self.session = session or requests.Session()
        self.timeout = timeout

    def build_payload(self, app_name: str, message: str, level: str) -> dict:
        return {
            "embeds": [
                {
                    "title": f"{TITLE_PREFIXES[self.kind]}: {app_name}",
                    "description": message,
                    "color": LEVEL_COLORS.get(level, LEVEL_COLORS["info"]),
                    "footer": {"text": f"Host: {self.settings.hostname_prefix}"},
                    "timestamp": datetime.datetime.now(datetime.timezone.utc).strftime(
                        "%Y-%m-%dT%H:%M:%SZ"
                    ),
                }
            ]
        }

    def notify(self, app_name: str, message: str, level: str = "info") -> bool:
        if not self.settings.webhook_url:
            return False

        try:
            response = self.session.post(
                self.settings.webhook_url,
                json=self.build_payload(app_name, message, level),
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as err:
            helper.print_warning(f"Notification delivery failed: {err}")
            return False
        return True
