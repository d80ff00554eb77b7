"""
Notification Scheduler — "session complete" reminders keyed by session id.

One reminder per session: scheduled when the session starts, cancelled when it
is abandoned or completes while the app is still running.
"""

from __future__ import annotations

import logging
import subprocess
import sys
import threading
from typing import Dict, List, Protocol

logger = logging.getLogger(__name__)

TITLE = "Session complete"
BODY = "Great focus! Your tree is fully grown."


class NotificationScheduler(Protocol):
    def schedule(self, identifier: str, fire_after_s: float) -> None: ...

    def cancel(self, identifier: str) -> None: ...

    def cancel_all(self) -> None: ...


class DesktopNotificationScheduler:
    """Platform-aware desktop notifications fired from per-session timers."""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._timers: Dict[str, threading.Timer] = {}
        self._lock = threading.Lock()

    def schedule(self, identifier: str, fire_after_s: float) -> None:
        timer = threading.Timer(max(0.0, fire_after_s), self._fire, args=(identifier,))
        timer.daemon = True
        with self._lock:
            previous = self._timers.pop(identifier, None)
            if previous is not None:
                previous.cancel()
            self._timers[identifier] = timer
        timer.start()
        logger.debug("Scheduled notification %s in %.0fs", identifier, fire_after_s)

    def cancel(self, identifier: str) -> None:
        with self._lock:
            timer = self._timers.pop(identifier, None)
        if timer is not None:
            timer.cancel()
            logger.debug("Cancelled notification %s", identifier)

    def cancel_all(self) -> None:
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer in timers:
            timer.cancel()

    def pending(self) -> List[str]:
        with self._lock:
            return list(self._timers)

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def _fire(self, identifier: str) -> None:
        with self._lock:
            self._timers.pop(identifier, None)
        if not self.enabled:
            logger.info("Notification %s due (desktop notifications disabled)", identifier)
            return
        if not self.post(TITLE, BODY):
            logger.warning("Could not post notification %s", identifier)

    def post(self, title: str, body: str) -> bool:
        """Show a notification now. Returns False if the platform call failed."""
        if sys.platform == "win32":
            return self._windows_toast(title, body)
        if sys.platform == "darwin":
            return self._macos_notify(title, body)
        return self._linux_notify(title, body)

    # ------------------------------------------------------------------
    # Platform implementations
    # ------------------------------------------------------------------

    def _windows_toast(self, title: str, body: str) -> bool:
        script = (
            "[Windows.UI.Notifications.ToastNotificationManager, Windows.UI.Notifications, ContentType = WindowsRuntime] | Out-Null;"
            "$t = [Windows.UI.Notifications.ToastNotificationManager]::GetTemplateContent("
            "[Windows.UI.Notifications.ToastTemplateType]::ToastText02);"
            f"$t.GetElementsByTagName('text')[0].AppendChild($t.CreateTextNode('{title}')) | Out-Null;"
            f"$t.GetElementsByTagName('text')[1].AppendChild($t.CreateTextNode('{body}')) | Out-Null;"
            "[Windows.UI.Notifications.ToastNotificationManager]::CreateToastNotifier('Forest Focus')"
            ".Show([Windows.UI.Notifications.ToastNotification]::new($t))"
        )
        return self._run(["powershell", "-Command", script])

    def _macos_notify(self, title: str, body: str) -> bool:
        return self._run(
            ["osascript", "-e", f'display notification "{body}" with title "{title}" sound name "default"']
        )

    def _linux_notify(self, title: str, body: str) -> bool:
        return self._run(["notify-send", "--app-name=Forest Focus", title, body])

    def _run(self, cmd: List[str]) -> bool:
        try:
            subprocess.run(cmd, check=True, capture_output=True, timeout=5)
            return True
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug("Notification command failed: %s", e)
            return False
