"""Desktop notifications via the platform's notification command.

Uses ``notify-send`` on Linux, ``osascript`` on macOS and a PowerShell
balloon tip on Windows, run with ``asyncio.create_subprocess_exec``.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import sys
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from permission_hook.errors import DeliveryError
from permission_hook.transcript.models import Status
from permission_hook.transcript.summary import status_title

if TYPE_CHECKING:
    from permission_hook.config import DesktopSettings

logger = logging.getLogger(__name__)

APP_NAME = "permission-hook"
_COMMAND_TIMEOUT = 10.0


@runtime_checkable
class Notifier(Protocol):
    """Shows a status notification to the user."""

    async def notify(self, status: Status, summary: str, session: str) -> bool:
        """Return ``True`` if a notification was shown."""
        ...


def notification_body(summary: str, session: str) -> str:
    return f"{session}\n{summary}" if summary else session


def _applescript_quote(text: str) -> str:
    return '"' + text.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _powershell_quote(text: str) -> str:
    return "'" + text.replace("'", "''") + "'"


def build_command(title: str, body: str, timeout_ms: int, platform: str = sys.platform) -> list[str] | None:
    """Argument vector for the platform notifier, or ``None`` if unsupported."""
    if platform.startswith("linux"):
        if shutil.which("notify-send") is None:
            return None
        return ["notify-send", "--app-name", APP_NAME, "--expire-time", str(timeout_ms), title, body]
    if platform == "darwin":
        script = f"display notification {_applescript_quote(body)} with title {_applescript_quote(title)}"
        return ["osascript", "-e", script]
    if platform.startswith("win"):
        script = (
            "Add-Type -AssemblyName System.Windows.Forms;"
            "$n = New-Object System.Windows.Forms.NotifyIcon;"
            "$n.Icon = [System.Drawing.SystemIcons]::Information;"
            "$n.Visible = $true;"
            f"$n.ShowBalloonTip({timeout_ms}, {_powershell_quote(title)}, {_powershell_quote(body)}, 'Info')"
        )
        return ["powershell", "-NoProfile", "-Command", script]
    return None


class DesktopNotifier:
    """Satisfies the :class:`Notifier` protocol."""

    def __init__(self, settings: DesktopSettings) -> None:
        self._settings = settings

    async def notify(self, status: Status, summary: str, session: str) -> bool:
        if not self._settings.enabled or status is Status.UNKNOWN:
            return False
        return await self.show(status_title(status), notification_body(summary, session))

    async def show(self, title: str, body: str) -> bool:
        command = build_command(title, body, self._settings.timeout_ms)
        if command is None:
            logger.debug("No desktop notifier available on %s", sys.platform)
            return False

        try:
            proc = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=_COMMAND_TIMEOUT)
        except TimeoutError as exc:
            proc.kill()
            raise DeliveryError("desktop notifier timed out") from exc
        except OSError as exc:
            raise DeliveryError(str(exc)) from exc

        if proc.returncode:
            detail = stderr.decode(errors="replace").strip() if stderr else ""
            raise DeliveryError(f"{command[0]} exited with {proc.returncode}" + (f": {detail}" if detail else ""))
        return True
