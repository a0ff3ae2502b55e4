"""
Credential storage for protocol sessions.

Each session's credential material is an opaque JSON blob kept in one file,
read at session start and rewritten on every credentials update emitted by
the adapter. Unlike the registry, failures here are raised: a session that
cannot load or save its credentials must not start.
"""

import asyncio
import json
import logging
import shutil
from pathlib import Path
from typing import Any

from wagate.adapter.interface import CredentialState
from wagate.core.exceptions import CredentialStoreError

logger = logging.getLogger(__name__)


class CredentialStore:
    """Manages per-session credential files under one base directory."""

    def __init__(self, base_dir: Path | str):
        self.base_dir = Path(base_dir)
        self._file_locks: dict[str, asyncio.Lock] = {}

    def _get_file_lock(self, session_id: str) -> asyncio.Lock:
        """Get or create a lock for one session's credential file."""
        if session_id not in self._file_locks:
            self._file_locks[session_id] = asyncio.Lock()
        return self._file_locks[session_id]

    def path_for(self, session_id: str) -> Path:
        return self.base_dir / f"auth_{session_id}.json"

    async def load(self, session_id: str) -> CredentialState:
        """
        Load credential material, or start from a fresh (empty) state.

        Raises:
            CredentialStoreError: If an existing file cannot be read or parsed
        """
        file_path = self.path_for(session_id)
        async with self._get_file_lock(session_id):
            if not await asyncio.to_thread(file_path.exists):
                logger.info(f"No credentials for {session_id}, initializing fresh state")
                return CredentialState(session_id=session_id, data={}, is_new=True)

            try:
                content = await asyncio.to_thread(file_path.read_text, encoding="utf-8")
                data = json.loads(content)
            except (OSError, json.JSONDecodeError) as e:
                raise CredentialStoreError(
                    f"Failed to load credentials for {session_id}: {e}"
                ) from e

        return CredentialState(session_id=session_id, data=data, is_new=False)

    async def save(self, session_id: str, data: dict[str, Any]) -> None:
        """
        Atomically rewrite a session's credential blob.

        Raises:
            CredentialStoreError: If the file cannot be written
        """
        file_path = self.path_for(session_id)
        async with self._get_file_lock(session_id):
            try:
                await asyncio.to_thread(
                    file_path.parent.mkdir, parents=True, exist_ok=True
                )
                temp_file = file_path.with_suffix(file_path.suffix + ".tmp")
                await asyncio.to_thread(
                    temp_file.write_text, json.dumps(data), encoding="utf-8"
                )
                await asyncio.to_thread(temp_file.replace, file_path)
            except (OSError, TypeError, ValueError) as e:
                raise CredentialStoreError(
                    f"Failed to save credentials for {session_id}: {e}"
                ) from e

    async def purge(self, session_id: str) -> bool:
        """
        Delete a session's credential material.

        Safe to call when nothing is stored. Also removes a legacy
        ``auth_<id>`` directory left by multi-file credential layouts.

        Returns:
            True if something was deleted
        """
        file_path = self.path_for(session_id)
        legacy_dir = self.base_dir / f"auth_{session_id}"
        removed = False
        async with self._get_file_lock(session_id):
            try:
                if await asyncio.to_thread(file_path.exists):
                    await asyncio.to_thread(file_path.unlink)
                    removed = True
                if await asyncio.to_thread(legacy_dir.is_dir):
                    await asyncio.to_thread(shutil.rmtree, legacy_dir)
                    removed = True
            except OSError as e:
                raise CredentialStoreError(
                    f"Failed to purge credentials for {session_id}: {e}"
                ) from e

        if removed:
            logger.info(f"Purged credentials for {session_id}")
        return removed
