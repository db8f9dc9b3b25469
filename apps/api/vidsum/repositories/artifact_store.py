"""Artifact persistence with remote, local-file and in-memory backends."""

from __future__ import annotations

from abc import ABC, abstractmethod
import asyncio
import logging
import os
from pathlib import Path
from uuid import uuid4

import httpx

from vidsum.core.config import Settings

logger = logging.getLogger(__name__)

_PROBE_FILE = ".vidsum-probe"


class StorageBackend(ABC):
    """Provider-neutral key/value interface for artifact bytes."""

    name: str

    @abstractmethod
    async def put(self, namespace: str, key: str, data: bytes) -> str:
        """Store ``data`` and return a reference to it."""

    @abstractmethod
    async def get(self, namespace: str, key: str) -> bytes | None:
        """Return stored bytes, or ``None`` when the key does not exist."""

    @abstractmethod
    async def delete(self, namespace: str, key: str) -> None:
        """Remove a key; removing a missing key is a no-op."""

    async def aclose(self) -> None:
        return None


def _validate_key_part(value: str) -> str:
    if not value or "/" in value or "\\" in value or value in (".", ".."):
        raise ValueError(f"Invalid artifact key component: {value!r}")
    return value


class MemoryBackend(StorageBackend):
    """Process-local storage; contents are lost on exit."""

    name = "memory"

    def __init__(self) -> None:
        self._items: dict[tuple[str, str], bytes] = {}

    async def put(self, namespace: str, key: str, data: bytes) -> str:
        self._items[(namespace, key)] = bytes(data)
        return f"memory://{namespace}/{key}"

    async def get(self, namespace: str, key: str) -> bytes | None:
        return self._items.get((namespace, key))

    async def delete(self, namespace: str, key: str) -> None:
        self._items.pop((namespace, key), None)


class LocalFileBackend(StorageBackend):
    """Stores each artifact as ``{root}/{namespace}/{key}``."""

    name = "local"

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def probe(self) -> bool:
        """Return True when the root directory accepts writes."""
        probe_path = self._root / _PROBE_FILE
        try:
            self._root.mkdir(parents=True, exist_ok=True)
            probe_path.write_bytes(b"ok")
            probe_path.unlink()
        except OSError as exc:
            logger.warning("storage.probe_failed root=%s reason=%s", self._root, type(exc).__name__)
            return False
        return True

    def _path(self, namespace: str, key: str) -> Path:
        return self._root / _validate_key_part(namespace) / _validate_key_part(key)

    @staticmethod
    def _write_atomic(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(f".{path.name}.{uuid4().hex}.tmp")
        try:
            tmp_path.write_bytes(data)
            os.replace(tmp_path, path)
        finally:
            tmp_path.unlink(missing_ok=True)

    @staticmethod
    def _read(path: Path) -> bytes | None:
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None

    async def put(self, namespace: str, key: str, data: bytes) -> str:
        path = self._path(namespace, key)
        await asyncio.to_thread(self._write_atomic, path, data)
        return path.resolve().as_uri()

    async def get(self, namespace: str, key: str) -> bytes | None:
        return await asyncio.to_thread(self._read, self._path(namespace, key))

    async def delete(self, namespace: str, key: str) -> None:
        await asyncio.to_thread(self._path(namespace, key).unlink, missing_ok=True)


class RemoteBlobBackend(StorageBackend):
    """Durable blob service addressed as ``{base_url}/{namespace}/{key}`` with a bearer token."""

    name = "remote"

    def __init__(
        self,
        *,
        base_url: str,
        token: str,
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = httpx.AsyncClient(
            timeout=timeout_seconds,
            headers={"Authorization": f"Bearer {token}"},
            transport=transport,
        )

    def _url(self, namespace: str, key: str) -> str:
        return f"{self._base_url}/{_validate_key_part(namespace)}/{_validate_key_part(key)}"

    async def put(self, namespace: str, key: str, data: bytes) -> str:
        url = self._url(namespace, key)
        response = await self._client.put(url, content=data)
        response.raise_for_status()
        try:
            body = response.json()
        except ValueError:
            body = None
        if isinstance(body, dict) and isinstance(body.get("url"), str):
            return body["url"]
        return url

    async def get(self, namespace: str, key: str) -> bytes | None:
        response = await self._client.get(self._url(namespace, key))
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.content

    async def delete(self, namespace: str, key: str) -> None:
        response = await self._client.delete(self._url(namespace, key))
        if response.status_code == 404:
            return
        response.raise_for_status()

    async def aclose(self) -> None:
        await self._client.aclose()


class ArtifactStore:
    """Facade that picks a backend once and downgrades to memory on write failure.

    Selection order: remote blob service when a real token is configured, the
    local filesystem when a probe write succeeds, in-process memory otherwise.
    Backends replaced by a downgrade or ``reselect`` stay readable so records
    written before the switch still load. ``get`` never raises and ``delete``
    never raises; ``put`` raises only when the memory fallback fails as well.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        remote_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._remote_transport = remote_transport
        self._fallback_lock = asyncio.Lock()
        self._retired: list[StorageBackend] = []
        self._backend = self._select_backend()

    @property
    def mode(self) -> str:
        return self._backend.name

    @property
    def backend(self) -> StorageBackend:
        return self._backend

    def _select_backend(self) -> StorageBackend:
        settings = self._settings
        if settings.has_blob_token:
            logger.info("storage.selected mode=remote")
            return RemoteBlobBackend(
                base_url=settings.blob_base_url or "",
                token=settings.blob_token or "",
                timeout_seconds=settings.http_timeout_seconds,
                transport=self._remote_transport,
            )

        local = LocalFileBackend(settings.storage_dir)
        if local.probe():
            logger.info("storage.selected mode=local root=%s", local.root)
            return local

        logger.warning("storage.selected mode=memory reason=no_writable_backend")
        return MemoryBackend()

    def reselect(self) -> str:
        """Re-run backend selection and return the resulting mode."""
        self._retired.append(self._backend)
        self._backend = self._select_backend()
        return self.mode

    async def _downgrade_to_memory(self, failed: StorageBackend) -> StorageBackend:
        async with self._fallback_lock:
            # Another writer may already have switched while this one waited.
            if self._backend is failed and not isinstance(failed, MemoryBackend):
                self._retired.append(failed)
                self._backend = MemoryBackend()
                logger.warning("storage.downgraded from=%s to=memory", failed.name)
            return self._backend

    async def put(self, namespace: str, key: str, data: bytes) -> str:
        backend = self._backend
        try:
            return await backend.put(namespace, key, data)
        except Exception as exc:
            if isinstance(backend, MemoryBackend):
                raise
            logger.warning(
                "storage.put_failed mode=%s namespace=%s reason=%s",
                backend.name,
                namespace,
                type(exc).__name__,
            )
        fallback = await self._downgrade_to_memory(backend)
        return await fallback.put(namespace, key, data)

    async def _get_from(self, backend: StorageBackend, namespace: str, key: str) -> bytes | None:
        try:
            return await backend.get(namespace, key)
        except Exception as exc:
            logger.warning(
                "storage.get_failed mode=%s namespace=%s reason=%s",
                backend.name,
                namespace,
                type(exc).__name__,
            )
            return None

    async def get(self, namespace: str, key: str) -> bytes | None:
        """Read from the active backend, then from retired ones, newest first."""
        data = await self._get_from(self._backend, namespace, key)
        if data is not None:
            return data
        for backend in reversed(self._retired):
            data = await self._get_from(backend, namespace, key)
            if data is not None:
                return data
        return None

    async def delete(self, namespace: str, key: str) -> None:
        # Retired backends still serve reads.
        for backend in [self._backend, *reversed(self._retired)]:
            try:
                await backend.delete(namespace, key)
            except Exception as exc:
                logger.warning(
                    "storage.delete_failed mode=%s namespace=%s reason=%s",
                    backend.name,
                    namespace,
                    type(exc).__name__,
                )

    async def aclose(self) -> None:
        for backend in [*self._retired, self._backend]:
            await backend.aclose()
        self._retired.clear()
