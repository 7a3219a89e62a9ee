# src/taskminder/connectors/matrix_client.py

from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path

from nio import AsyncClient, AsyncClientConfig, LoginResponse

logger = logging.getLogger(__name__)

try:
    import olm  # type: ignore  # noqa: F401

    OLM_AVAILABLE = True
except Exception:
    OLM_AVAILABLE = False

SESSION_FILE = "session.json"


@dataclass(slots=True, frozen=True)
class MatrixSession:
    access_token: str
    user_id: str
    device_id: str

    @classmethod
    def load(cls, path: Path) -> MatrixSession:
        data = json.loads(path.read_text("utf-8"))
        if not isinstance(data, dict):
            raise ValueError("session file must hold a JSON object")
        try:
            session = cls(str(data["access_token"]), str(data["user_id"]), str(data["device_id"]))
        except KeyError as e:
            raise ValueError(f"session file is missing {e}") from e
        if not all((session.access_token, session.user_id, session.device_id)):
            raise ValueError("session file has empty fields")
        return session

    def save(self, path: Path) -> None:
        tmp = path.with_suffix(".tmp")
        tmp.write_text(json.dumps(asdict(self)), "utf-8")
        os.replace(tmp, path)
        try:
            os.chmod(path, 0o600)
        except OSError:
            # Best-effort: not critical on Windows or restricted FS.
            pass

    def apply(self, client: AsyncClient) -> None:
        client.access_token = self.access_token
        client.user_id = self.user_id
        client.device_id = self.device_id


def _restore(client: AsyncClient, session_file: Path, *, encrypted: bool) -> bool:
    if not session_file.exists():
        return False
    try:
        MatrixSession.load(session_file).apply(client)
    except (OSError, ValueError) as e:
        logger.warning("Cannot restore Matrix session from %s, falling back to password login: %r", session_file, e)
        return False

    if encrypted:
        try:
            client.load_store()
        except Exception as e:
            logger.warning("Failed to load E2EE store: %r", e)

    logger.info("Matrix session restored for %s", client.user_id)
    return True


async def _password_login(client: AsyncClient, password: str, session_file: Path, device_name: str) -> bool:
    resp = await client.login(password=password, device_name=device_name)
    if not isinstance(resp, LoginResponse):
        logger.error("Matrix login failed: %r", resp)
        return False

    try:
        MatrixSession(resp.access_token, resp.user_id, resp.device_id).save(session_file)
        logger.info("Matrix session saved to %s (user=%s)", session_file, resp.user_id)
    except OSError as e:
        # Still usable for this process; the next start logs in again.
        logger.error("Failed to write Matrix session (%s): %r", session_file, e)
    return True


async def create_matrix_client(settings) -> AsyncClient | None:
    """
    Build a logged-in AsyncClient for the reminder sender, or None if Matrix is
    not configured or login fails.

    The session file under matrix_store_path keeps the access token/device id
    across worker restarts, so the password is only needed once.
    """
    homeserver = (getattr(settings, "matrix_homeserver", "") or "").strip()
    user_id = (getattr(settings, "matrix_user_id", "") or "").strip()
    password = (getattr(settings, "matrix_password", "") or "").strip()
    store_dir = Path(getattr(settings, "matrix_store_path", Path(".local/taskminder/matrix_store")))

    if not homeserver or not user_id:
        logger.error("Matrix is not configured: set TASKMINDER_MATRIX_HOMESERVER and TASKMINDER_MATRIX_USER_ID")
        return None

    store_dir.mkdir(parents=True, exist_ok=True)
    session_file = store_dir / SESSION_FILE

    encrypted = bool(OLM_AVAILABLE)
    if not encrypted:
        logger.warning("python-olm not installed: reminders to encrypted rooms will fail")

    client = AsyncClient(
        homeserver,
        user_id,
        store_path=str(store_dir) if encrypted else None,
        config=AsyncClientConfig(encryption_enabled=encrypted, store_sync_tokens=True),
    )

    if _restore(client, session_file, encrypted=encrypted):
        return client

    if not password:
        logger.error("No Matrix session yet: set TASKMINDER_MATRIX_PASSWORD once to log in.")
    else:
        device_name = f"{getattr(settings, 'app_name', 'taskminder')} reminders"
        if await _password_login(client, password, session_file, device_name):
            return client

    await client.close()
    return None
