"""Release check against GitHub, at most once per configured interval."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import TYPE_CHECKING, Callable

import httpx
from pydantic import BaseModel, ValidationError

from permission_hook import __version__
from permission_hook.delivery.reliability import deliver
from permission_hook.errors import DeliveryError

if TYPE_CHECKING:
    from permission_hook.config import UpdateSettings

logger = logging.getLogger(__name__)

RELEASES_URL = "https://api.github.com/repos/{repo}/releases/latest"
UPDATE_STATE_FILENAME = "update_state.json"
REQUEST_TIMEOUT = 5.0


class UpdateState(BaseModel):
    last_check: int = 0
    latest_version: str | None = None
    notified: bool = False


def parse_version(version: str) -> tuple[int, int, int]:
    parts: list[int] = []
    for piece in version.strip().lstrip("vV").split("."):
        try:
            parts.append(int(piece))
        except ValueError:
            continue
    parts.extend([0, 0, 0])
    return parts[0], parts[1], parts[2]


def is_newer_version(current: str, latest: str) -> bool:
    """True if *latest* is a higher ``major.minor.patch`` than *current*."""
    return parse_version(latest) > parse_version(current)


class UpdateChecker:
    """Checks for a newer release and remembers whether the user was told."""

    def __init__(
        self,
        settings: UpdateSettings,
        state_path: Path,
        *,
        current_version: str = __version__,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._settings = settings
        self._state_path = Path(state_path)
        self._current = current_version
        self._clock = clock

    def load_state(self) -> UpdateState:
        try:
            return UpdateState.model_validate_json(self._state_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return UpdateState()
        except (OSError, ValidationError) as exc:
            logger.debug("Ignoring unreadable update state: %s", exc)
            return UpdateState()

    def save_state(self, state: UpdateState) -> None:
        try:
            self._state_path.parent.mkdir(parents=True, exist_ok=True)
            self._state_path.write_text(state.model_dump_json(indent=2), encoding="utf-8")
        except OSError as exc:
            logger.warning("Cannot save update state: %s", exc)

    def _due(self, state: UpdateState) -> bool:
        interval = self._settings.check_interval_hours * 3600
        return int(self._clock()) - state.last_check >= interval

    async def fetch_latest_version(self) -> str:
        url = RELEASES_URL.format(repo=self._settings.github_repo)
        client = httpx.AsyncClient(
            timeout=REQUEST_TIMEOUT,
            headers={"User-Agent": "permission-hook", "Accept": "application/vnd.github+json"},
        )

        async def _get() -> httpx.Response:
            response = await client.get(url)
            response.raise_for_status()
            return response

        try:
            response = await deliver(_get, channel="update")
        finally:
            await client.aclose()

        try:
            tag = response.json()["tag_name"]
        except (ValueError, KeyError, TypeError) as exc:
            raise DeliveryError(f"unexpected release payload: {exc}") from exc
        if not isinstance(tag, str):
            raise DeliveryError(f"unexpected tag_name: {tag!r}")
        return tag

    async def check(self) -> tuple[str, str] | None:
        """Return ``(current, latest)`` when an unannounced update exists."""
        if not self._settings.check_enabled:
            return None

        state = self.load_state()
        if not self._due(state):
            if state.latest_version and not state.notified and is_newer_version(
                self._current, state.latest_version
            ):
                return self._current, state.latest_version
            return None

        logger.debug("Checking for updates from %s", self._settings.github_repo)
        state.last_check = int(self._clock())
        try:
            latest = await self.fetch_latest_version()
        except DeliveryError as exc:
            logger.debug("Update check failed: %s", exc)
            self.save_state(state)
            return None

        if is_newer_version(self._current, latest):
            if latest != state.latest_version:
                state.notified = False
            state.latest_version = latest
            self.save_state(state)
            return None if state.notified else (self._current, latest)

        state.latest_version = None
        state.notified = False
        self.save_state(state)
        return None

    def mark_notified(self) -> None:
        state = self.load_state()
        state.notified = True
        self.save_state(state)
