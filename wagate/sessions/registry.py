"""
Session Registry - durable mapping of session id to SessionMeta.

Pure storage, no network. The whole registry is a single JSON document
rewritten (tmp file + rename) on every mutation, off the event loop and
awaited before the mutation returns. Write failures are logged and
swallowed: the in-memory record stays authoritative for the running process.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .models import SessionMeta, now_ms

logger = logging.getLogger(__name__)


class SessionRegistry:
    """
    Persisted session metadata store.

    Document layout::

        {"sessions": {"<id>": {"id": ..., "label": ..., "autoStart": ...,
                               "webhookUrl": ..., "webhookSecret": ...,
                               "createdAt": ..., "ownerId": ...}}}
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)
        self._sessions: dict[str, SessionMeta] = {}
        self._write_lock = asyncio.Lock()

    async def load(self) -> None:
        """Load the registry document; unreadable entries are skipped."""
        if not await asyncio.to_thread(self.path.exists):
            logger.info(f"No session registry at {self.path}, starting empty")
            return

        try:
            content = await asyncio.to_thread(self.path.read_text, encoding="utf-8")
            document = json.loads(content)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Failed to load session registry {self.path}: {e}")
            return

        for session_id, raw in (document.get("sessions") or {}).items():
            try:
                self._sessions[session_id] = SessionMeta.model_validate(
                    {"id": session_id, "label": session_id, **raw}
                )
            except ValidationError as e:
                logger.warning(f"Skipping invalid registry entry {session_id}: {e}")

        logger.info(f"Loaded {len(self._sessions)} sessions from {self.path}")

    def _write(self, content: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        temp_file = self.path.with_suffix(self.path.suffix + ".tmp")
        temp_file.write_text(content, encoding="utf-8")
        temp_file.replace(self.path)

    async def _save(self) -> bool:
        async with self._write_lock:
            # snapshot under the lock so the last writer persists the latest state
            document = {
                "sessions": {
                    session_id: meta.model_dump(by_alias=True)
                    for session_id, meta in self._sessions.items()
                }
            }
            try:
                await asyncio.to_thread(self._write, json.dumps(document, indent=2))
                return True
            except OSError as e:
                logger.error(f"Failed to persist session registry {self.path}: {e}")
                return False

    async def upsert(self, meta: dict[str, Any]) -> SessionMeta:
        """
        Merge supplied fields over the existing record (or defaults).

        Fields that are absent or None keep their previous value;
        ``created_at`` is set once and never overwritten.

        Args:
            meta: Field mapping, snake_case or camelCase keys; ``id`` required

        Returns:
            The stored record
        """
        session_id = meta.get("id")
        if not session_id:
            raise ValueError("meta.id required")

        supplied = SessionMeta.model_validate(
            {"label": session_id, **{k: v for k, v in meta.items() if v is not None}}
        ).model_dump(exclude_unset=True)
        previous = self._sessions.get(session_id)

        if previous is None:
            merged = {
                "label": session_id,
                "auto_start": True,
                "webhook_url": "",
                "webhook_secret": "",
                "owner_id": None,
                **supplied,
                "created_at": now_ms(),
            }
        else:
            merged = {
                **previous.model_dump(),
                **supplied,
                "created_at": previous.created_at,
            }
            # label defaulted above, keep the stored one unless given
            if "label" not in meta or meta.get("label") is None:
                merged["label"] = previous.label

        stored = SessionMeta.model_validate(merged)
        self._sessions[session_id] = stored
        await self._save()
        return stored

    async def remove(self, session_id: str) -> None:
        """Delete a record; no error if it does not exist."""
        if self._sessions.pop(session_id, None) is not None:
            await self._save()

    def list(self) -> list[SessionMeta]:
        """All records, in insertion order."""
        return list(self._sessions.values())

    def get(self, session_id: str) -> SessionMeta | None:
        return self._sessions.get(session_id)
