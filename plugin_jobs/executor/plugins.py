# plugin_jobs/executor/plugins.py
"""
Reference executor for a game server plugins directory.

Plugins are ``<name>.jar`` files; a disabled plugin is renamed to
``<name>.jar.disabled``. Downloads stream through httpx into a temp file that
is only renamed into place after the transfer completes, so a cancelled or
failed download never leaves a half-written jar behind.
"""

import asyncio
import logging
import os
import shutil
import uuid
from datetime import datetime, timezone
from pathlib import Path, PurePosixPath
from typing import Any
from urllib.parse import unquote, urlparse

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from plugin_jobs.errors import ExecutorError
from plugin_jobs.executor.base import (
    CancellationToken,
    ExecutorRegistry,
    ProgressCallback,
)
from plugin_jobs.models.jobs import JobAction

logger = logging.getLogger(__name__)

JAR_SUFFIX = ".jar"
DISABLED_SUFFIX = ".jar.disabled"
CHUNK_SIZE = 64 * 1024


class PluginDirectoryExecutor:
    """
    Performs install/uninstall/update/enable/disable against a plugins directory.

    Features:
        - Streaming download with percentage progress (every 10%)
        - Transport errors retried with exponential backoff (tenacity)
        - Cancellation checked between chunks and before committing a file
        - Previous jar backed up before an update replaces it
    """

    def __init__(
        self,
        plugins_dir: str | Path,
        download_timeout: float = 300.0,
        download_retries: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """
        Initialize plugin executor.

        Args:
            plugins_dir: Directory holding plugin jars
            download_timeout: Per-request timeout in seconds
            download_retries: Attempts per download on transport errors
            transport: Optional httpx transport (tests inject MockTransport)
        """
        self._plugins_dir = Path(plugins_dir)
        self._backups_dir = self._plugins_dir / "backups"
        self._timeout = download_timeout
        self._retries = max(download_retries, 1)
        self._transport = transport
        logger.info(f"Initialized PluginDirectoryExecutor for {self._plugins_dir}")

    def registry(self) -> ExecutorRegistry:
        """Build a registry wired to this executor's handlers."""
        return ExecutorRegistry(
            {
                JobAction.INSTALL: self.install,
                JobAction.UNINSTALL: self.uninstall,
                JobAction.UPDATE: self.update,
                JobAction.ENABLE: self.enable,
                JobAction.DISABLE: self.disable,
            }
        )

    async def install(
        self,
        plugin_name: str | None,
        url: str | None,
        options: dict[str, Any],
        progress: ProgressCallback,
        cancel_token: CancellationToken,
    ) -> dict[str, Any]:
        if not url:
            raise ExecutorError("URL is required for install action")

        name = options.get("customName") or plugin_name or _name_from_url(url)
        await progress(f"Installing plugin {name} from: {url}")

        existing = self._find_plugin(name)
        if existing is not None:
            if not options.get("autoUpdate"):
                raise ExecutorError(
                    f"Plugin conflict: {name} already exists. Use update action instead.",
                    details={"plugin": name, "existing": existing.name},
                )
            await progress("Plugin already exists, autoUpdate enabled, proceeding with update...")
            return await self.update(name, url, options, progress, cancel_token)

        target = self._plugins_dir / f"{name}{JAR_SUFFIX}"
        size = await self._download(url, target, progress, cancel_token)
        await progress(f"Installed {target.name} ({size} bytes)")
        return {"plugin": name, "file": target.name, "bytes": size, "action": "install"}

    async def update(
        self,
        plugin_name: str | None,
        url: str | None,
        options: dict[str, Any],
        progress: ProgressCallback,
        cancel_token: CancellationToken,
    ) -> dict[str, Any]:
        if not plugin_name or not url:
            raise ExecutorError("Plugin name and URL are required for update action")

        existing = self._find_plugin(plugin_name)
        if existing is None:
            raise ExecutorError(f"Plugin not found: {plugin_name}")

        await progress(f"Updating plugin: {plugin_name}")
        await progress(f"Update source: {url}")

        backup = await asyncio.to_thread(self._backup, existing)
        await progress(f"Backed up current version to {backup.name}")

        size = await self._download(url, existing, progress, cancel_token)
        await progress(f"Updated {existing.name} ({size} bytes)")
        return {
            "plugin": plugin_name,
            "file": existing.name,
            "bytes": size,
            "backup": backup.name,
            "action": "update",
        }

    async def uninstall(
        self,
        plugin_name: str | None,
        url: str | None,
        options: dict[str, Any],
        progress: ProgressCallback,
        cancel_token: CancellationToken,
    ) -> dict[str, Any]:
        if not plugin_name:
            raise ExecutorError("Plugin name is required for uninstall action")

        existing = self._find_plugin(plugin_name)
        if existing is None:
            raise ExecutorError(f"Plugin not found: {plugin_name}")

        await progress(f"Uninstalling plugin: {plugin_name}")
        delete_configs = bool(options.get("deleteConfigs", False))
        if delete_configs:
            await progress("Will also delete plugin configuration")

        cancel_token.raise_if_cancelled()
        await asyncio.to_thread(existing.unlink)

        config_dir = self._plugins_dir / plugin_name
        configs_deleted = False
        if delete_configs and config_dir.is_dir():
            await asyncio.to_thread(shutil.rmtree, config_dir)
            configs_deleted = True

        await progress("Plugin uninstalled successfully")
        return {
            "plugin": plugin_name,
            "file": existing.name,
            "configs_deleted": configs_deleted,
            "action": "uninstall",
        }

    async def enable(
        self,
        plugin_name: str | None,
        url: str | None,
        options: dict[str, Any],
        progress: ProgressCallback,
        cancel_token: CancellationToken,
    ) -> dict[str, Any]:
        return await self._toggle(plugin_name, True, progress, cancel_token)

    async def disable(
        self,
        plugin_name: str | None,
        url: str | None,
        options: dict[str, Any],
        progress: ProgressCallback,
        cancel_token: CancellationToken,
    ) -> dict[str, Any]:
        return await self._toggle(plugin_name, False, progress, cancel_token)

    async def _toggle(
        self,
        plugin_name: str | None,
        enabled: bool,
        progress: ProgressCallback,
        cancel_token: CancellationToken,
    ) -> dict[str, Any]:
        if not plugin_name:
            raise ExecutorError("Plugin name is required for this action")

        verb = "Enabling" if enabled else "Disabling"
        await progress(f"{verb} plugin: {plugin_name}")

        active = self._plugins_dir / f"{plugin_name}{JAR_SUFFIX}"
        disabled = self._plugins_dir / f"{plugin_name}{DISABLED_SUFFIX}"
        source, target = (disabled, active) if enabled else (active, disabled)

        if target.exists() and not source.exists():
            await progress(f"Plugin already {'enabled' if enabled else 'disabled'}")
            return {"plugin": plugin_name, "enabled": enabled, "changed": False}
        if not source.exists():
            raise ExecutorError(f"Plugin not found: {plugin_name}")

        cancel_token.raise_if_cancelled()
        await asyncio.to_thread(os.replace, source, target)
        await progress(f"Plugin {'enabled' if enabled else 'disabled'} successfully")
        return {"plugin": plugin_name, "enabled": enabled, "changed": True}

    def _find_plugin(self, name: str) -> Path | None:
        for suffix in (JAR_SUFFIX, DISABLED_SUFFIX):
            candidate = self._plugins_dir / f"{name}{suffix}"
            if candidate.exists():
                return candidate
        return None

    def _backup(self, plugin_file: Path) -> Path:
        self._backups_dir.mkdir(parents=True, exist_ok=True)
        stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        backup = self._backups_dir / f"{plugin_file.name}.{stamp}"
        shutil.copy2(plugin_file, backup)
        return backup

    async def _download(
        self,
        url: str,
        target: Path,
        progress: ProgressCallback,
        cancel_token: CancellationToken,
    ) -> int:
        """
        Download ``url`` to ``target`` via a temp file.

        Returns:
            Number of bytes written
        """
        await asyncio.to_thread(self._plugins_dir.mkdir, parents=True, exist_ok=True)
        tmp_path = target.with_name(f".{target.name}.{uuid.uuid4().hex}.part")

        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._retries),
                wait=wait_exponential(multiplier=1, min=1, max=30),
                retry=retry_if_exception_type(httpx.TransportError),
                before_sleep=before_sleep_log(logger, logging.WARNING),
                reraise=True,
            ):
                with attempt:
                    size = await self._stream_to(url, tmp_path, progress, cancel_token)

            cancel_token.raise_if_cancelled()
            await asyncio.to_thread(os.replace, tmp_path, target)
            return size
        except httpx.HTTPStatusError as e:
            raise ExecutorError(
                f"Download failed: HTTP {e.response.status_code} from {url}",
                details={"status_code": e.response.status_code, "url": url},
            ) from e
        except httpx.TransportError as e:
            raise ExecutorError(f"Download failed: {e}", details={"url": url}) from e
        finally:
            tmp_path.unlink(missing_ok=True)

    async def _stream_to(
        self,
        url: str,
        tmp_path: Path,
        progress: ProgressCallback,
        cancel_token: CancellationToken,
    ) -> int:
        async with httpx.AsyncClient(
            timeout=self._timeout, follow_redirects=True, transport=self._transport
        ) as client:
            async with client.stream("GET", url) as response:
                response.raise_for_status()
                total = int(response.headers.get("content-length") or 0)
                written = 0
                next_report = 10

                # Blocking file I/O stays off the event loop
                f = await asyncio.to_thread(tmp_path.open, "wb")
                try:
                    async for chunk in response.aiter_bytes(CHUNK_SIZE):
                        cancel_token.raise_if_cancelled()
                        await asyncio.to_thread(f.write, chunk)
                        written += len(chunk)
                        if total:
                            percent = min(100, written * 100 // total)
                            if percent >= next_report:
                                await progress(f"Download progress: {percent}%", percent)
                                next_report = (percent // 10 + 1) * 10
                finally:
                    await asyncio.to_thread(f.close)

        if written == 0:
            raise ExecutorError(f"Download from {url} returned no data")
        return written


def _name_from_url(url: str) -> str:
    filename = PurePosixPath(unquote(urlparse(url).path)).name
    if not filename.endswith(JAR_SUFFIX):
        raise ExecutorError(
            f"Cannot derive plugin name from {url}; set options.customName"
        )
    return filename[: -len(JAR_SUFFIX)]
