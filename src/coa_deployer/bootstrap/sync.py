"""Synchronization of the helm values document with the remote blob store.

The blob store is the source of truth between deployer runs. Each sync
renders the document once and writes the same text to the local chart
directory (for helm) and to the store, so both copies are identical.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol
from urllib.parse import quote

import httpx

from ..errors import DeployerError, DocumentNotFoundError, SyncFailure
from ..shared.cancel import CancellationSignal
from ..shared.logging import get_logger
from .values import (
    CONFIG,
    IDENTITY,
    HelmValues,
    dump_values,
    load_values,
    render_access_lists,
    to_document,
    to_settings,
)

logger = get_logger(__name__)

BLOB_API_VERSION = "2021-08-06"


class DocumentStore(Protocol):
    """Whole-document text store keyed by container and name."""

    async def download_text(self, container: str, name: str) -> str | None:
        """Return the document text, or None when it does not exist."""
        ...

    async def upload_text(self, container: str, name: str, text: str) -> None:
        """Replace the document with ``text``."""
        ...


class BlobDocumentStore:
    """DocumentStore backed by the Azure Blob REST API."""

    def __init__(
        self,
        account_url: str,
        sas_token: str | None = None,
        bearer_token: str | None = None,
        client: httpx.AsyncClient | None = None,
        timeout_seconds: float = 30.0,
    ):
        """Initialize the store.

        Args:
            account_url: Blob endpoint, e.g. https://acct.blob.core.windows.net
            sas_token: Optional SAS query string (with or without leading '?').
            bearer_token: Optional AAD token, used when no SAS token is given.
            client: Optional preconfigured httpx client (tests inject one).
            timeout_seconds: Per-request timeout for the default client.
        """
        self.account_url = account_url.rstrip("/")
        self.sas_token = (sas_token or "").lstrip("?")
        self.bearer_token = bearer_token
        self._client = client
        self.timeout_seconds = timeout_seconds

    def _url(self, container: str, name: str) -> str:
        url = f"{self.account_url}/{quote(container)}/{quote(name)}"
        if self.sas_token:
            url = f"{url}?{self.sas_token}"
        return url

    def _headers(self) -> dict[str, str]:
        headers = {"x-ms-version": BLOB_API_VERSION}
        if self.bearer_token and not self.sas_token:
            headers["Authorization"] = f"Bearer {self.bearer_token}"
        return headers

    async def _request(self, method: str, container: str, name: str, **kwargs) -> httpx.Response:
        try:
            if self._client is not None:
                return await self._client.request(method, self._url(container, name), **kwargs)
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                return await client.request(method, self._url(container, name), **kwargs)
        except httpx.HTTPError as exc:
            raise SyncFailure(container, name, str(exc) or type(exc).__name__) from exc

    async def download_text(self, container: str, name: str) -> str | None:
        response = await self._request("GET", container, name, headers=self._headers())
        if response.status_code == 404:
            return None
        if response.status_code != 200:
            raise SyncFailure(container, name, f"HTTP {response.status_code} on download")
        return response.text

    async def upload_text(self, container: str, name: str, text: str) -> None:
        headers = self._headers()
        headers["x-ms-blob-type"] = "BlockBlob"
        headers["Content-Type"] = "text/plain; charset=utf-8"
        response = await self._request(
            "PUT", container, name, headers=headers, content=text.encode("utf-8")
        )
        if response.status_code not in (200, 201):
            raise SyncFailure(container, name, f"HTTP {response.status_code} on upload")


@dataclass
class ManagedIdentity:
    """User-assigned identity bound into the chart."""

    name: str
    resource_id: str
    client_id: str


class ValuesSynchronizer:
    """Keep the local values file and the remote copy in step."""

    def __init__(
        self,
        store: DocumentStore,
        local_path: Path,
        container: str = "configuration",
        name: str = "aksValues.yaml",
        cancel: CancellationSignal | None = None,
    ):
        """Initialize synchronizer.

        Args:
            store: Remote document store.
            local_path: Where helm reads the rendered values from.
            container: Store container holding the document.
            name: Document name within the container.
            cancel: Optional cancellation signal checked before store I/O.
        """
        self.store = store
        self.local_path = local_path
        self.container = container
        self.name = name
        self.cancel = cancel or CancellationSignal()

    async def publish(
        self,
        template: HelmValues,
        settings: dict[str, str],
        *,
        resource_group: str,
        storage_account_name: str,
        managed_identity: ManagedIdentity,
        key_vault_url: str | None = None,
        cross_subscription: bool = False,
    ) -> Path:
        """Render a fresh document from the packaged template and publish it.

        Returns:
            Path to the written local values file.
        """
        values = to_document(settings, template)
        values.section(CONFIG)["resourceGroup"] = resource_group
        identity = values.section(IDENTITY)
        identity["name"] = managed_identity.name
        identity["resourceId"] = managed_identity.resource_id
        identity["clientId"] = managed_identity.client_id
        render_access_lists(
            values,
            storage_account_name=storage_account_name,
            resource_group=resource_group,
            key_vault_url=key_vault_url,
            cross_subscription=cross_subscription,
        )
        return await self._write(dump_values(values))

    async def refresh(self, updates: dict[str, str]) -> Path:
        """Overlay updated settings onto the stored document and republish.

        Only the keys in ``updates`` change; every other setting keeps the
        value the stored document already has.

        Raises:
            DocumentNotFoundError: the store has no document yet.
        """
        current = await self.fetch()
        settings = to_settings(current)
        settings.update(updates)
        values = to_document(settings, current)
        return await self._write(dump_values(values))

    async def fetch(self) -> HelmValues:
        """Download and parse the stored document."""
        self.cancel.raise_if_cancelled("download values")
        try:
            text = await self.store.download_text(self.container, self.name)
        except DeployerError:
            raise
        except Exception as exc:
            raise SyncFailure(self.container, self.name, str(exc) or type(exc).__name__) from exc
        if text is None:
            raise DocumentNotFoundError(self.container, self.name)
        return load_values(text)

    async def _write(self, text: str) -> Path:
        self.local_path.parent.mkdir(parents=True, exist_ok=True)
        staging = self.local_path.with_name(self.local_path.name + ".tmp")
        try:
            staging.write_text(text, encoding="utf-8")
        except OSError as exc:
            raise SyncFailure(self.container, self.name, f"local write failed: {exc}") from exc

        uploaded = False
        try:
            self.cancel.raise_if_cancelled("upload values")
            await self.store.upload_text(self.container, self.name, text)
            uploaded = True
        except DeployerError:
            raise
        except Exception as exc:
            raise SyncFailure(self.container, self.name, str(exc) or type(exc).__name__) from exc
        finally:
            if not uploaded:
                staging.unlink(missing_ok=True)

        try:
            os.replace(staging, self.local_path)
        except OSError as exc:
            staging.unlink(missing_ok=True)
            raise SyncFailure(self.container, self.name, f"local replace failed after upload: {exc}") from exc

        logger.info(
            "Values synchronized",
            local_path=str(self.local_path),
            document=f"{self.container}/{self.name}",
        )
        return self.local_path
