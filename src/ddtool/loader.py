"""Pack acquisition — fetch a raw pack document and hand it to the normalizer.

Sources, in order:

1. The configured source: a directory of ``<pack_id>.json`` files, or an
   ``http(s)://`` base URL fetched with httpx (one attempt, no retry).
2. The built-in packs from ``packs_data.BUILT_IN_PACKS``.

A pack that is *missing* from the configured source falls through to the
built-ins. Any other failure (unreachable server, unreadable file, bad JSON)
raises ``AcquisitionError`` and leaves the caller's state untouched.
"""

from __future__ import annotations

import copy
import json
import logging
from collections.abc import Mapping
from pathlib import Path
from time import perf_counter
from typing import Any
from urllib.parse import quote

import httpx

from ddtool.packs import Pack, PackNormalizer, ValidationError
from ddtool.packs_data import BUILT_IN_PACKS
from ddtool.validation import sanitize_pack_id

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0
_NO_STORE = {"Cache-Control": "no-store"}
_MISSING: Any = object()


class AcquisitionError(OSError):
    """Raised when a pack document cannot be fetched or parsed.

    ``resource`` names the file path or URL that failed; ``hint`` suggests a fix.
    ``not_found`` is set when no source has the pack (as opposed to a source
    that could not be reached or read).
    """

    def __init__(self, message: str, *, resource: str, hint: str = "", not_found: bool = False) -> None:
        self.resource = resource
        self.hint = hint
        self.not_found = not_found
        super().__init__(f"{message}\n{hint}" if hint else message)


class PackLoader:
    """Fetches and normalizes decision packs by id."""

    def __init__(
        self,
        source: str | Path | None = None,
        *,
        normalizer: PackNormalizer | None = None,
        builtins: Mapping[str, dict[str, Any]] | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.normalizer = normalizer or PackNormalizer()
        self._builtins = BUILT_IN_PACKS if builtins is None else builtins
        self._timeout = timeout
        self._client = client
        self._base_url: str | None = None
        self._directory: Path | None = None
        if isinstance(source, str) and source.startswith(("http://", "https://")):
            self._base_url = source.rstrip("/")
        elif source is not None:
            self._directory = Path(source)

    @property
    def is_remote(self) -> bool:
        return self._base_url is not None

    def describe_source(self) -> str:
        if self._base_url is not None:
            return self._base_url
        if self._directory is not None:
            return str(self._directory)
        return "built-in packs"

    def available(self) -> list[str]:
        """Pack ids known without a network round trip (local files + built-ins)."""
        ids = set(self._builtins)
        if self._directory is not None and self._directory.is_dir():
            ids.update(p.stem for p in self._directory.glob("*.json"))
        return sorted(ids)

    # -- Loading --------------------------------------------------------------

    async def load(self, pack_id: str) -> Pack:
        """Fetch, parse, and normalize the pack stored under *pack_id*.

        Raises:
            AcquisitionError: The document could not be fetched or parsed.
            ValidationError: The document is not a valid pack.
        """
        key = self._check_id(pack_id)
        started = perf_counter()

        raw: Any = _MISSING
        resource = ""
        if self._base_url is not None:
            raw, resource = await self._fetch_remote(self._base_url, key)
        elif self._directory is not None:
            raw, resource = self._read_local(self._directory / f"{key}.json")

        if raw is _MISSING:
            if key not in self._builtins:
                raise self._not_found(key, resource)
            raw, resource = copy.deepcopy(self._builtins[key]), f"builtin:{key}"

        pack = self._normalize(raw, key, resource)
        duration_ms = round((perf_counter() - started) * 1000, 2)
        logger.info(
            "Loaded pack %s from %s",
            pack.pack_id,
            resource,
            extra={"pack": pack.pack_id, "duration_ms": duration_ms},
        )
        return pack

    def load_file(self, path: Path) -> Pack:
        """Normalize a pack document from an explicit file path (no fallback)."""
        raw, resource = self._read_local(path)
        if raw is _MISSING:
            raise AcquisitionError(
                f"Decision pack file not found: {path}",
                resource=str(path),
                hint="Check the path and try again.",
                not_found=True,
            )
        return self._normalize(raw, path.stem, resource)

    def load_builtin(self, pack_id: str) -> Pack:
        """Normalize a built-in pack synchronously."""
        if pack_id not in self._builtins:
            raise self._not_found(pack_id, f"builtin:{pack_id}")
        return self._normalize(copy.deepcopy(self._builtins[pack_id]), pack_id, f"builtin:{pack_id}")

    # -- Internals ------------------------------------------------------------

    @staticmethod
    def _check_id(pack_id: str) -> str:
        key, error = sanitize_pack_id(pack_id)
        if error:
            raise AcquisitionError(
                f"Cannot load decision pack: {error}",
                resource=str(pack_id),
                hint="Pass a pack id such as 'figure1'.",
            )
        return key

    def _not_found(self, key: str, resource: str) -> AcquisitionError:
        where = resource or self.describe_source()
        return AcquisitionError(
            f"Decision pack '{key}' not found ({where})",
            resource=where,
            hint=f"Available packs: {', '.join(self.available()) or '(none)'}. "
            "Run 'ddtool init' to install the built-in packs into .ddtool/packs/.",
            not_found=True,
        )

    def _normalize(self, raw: Any, key: str, resource: str) -> Pack:
        try:
            return self.normalizer.normalize(raw, fallback_id=key)
        except ValidationError as exc:
            raise ValidationError(f"Invalid decision pack format: {resource}\n{exc}", errors=exc.errors) from exc

    @staticmethod
    def _read_local(path: Path) -> tuple[Any, str]:
        resource = str(path)
        if not path.is_file():
            return _MISSING, resource
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as exc:
            raise AcquisitionError(
                f"Failed to read decision pack: {resource} ({exc})",
                resource=resource,
                hint="Check file permissions.",
            ) from exc
        try:
            return json.loads(text), resource
        except json.JSONDecodeError as exc:
            raise AcquisitionError(
                f"Failed to parse JSON in {resource}: {exc}",
                resource=resource,
                hint="Fix the JSON syntax, then run 'ddtool validate' on the file.",
            ) from exc

    async def _fetch_remote(self, base_url: str, key: str) -> tuple[Any, str]:
        url = f"{base_url}/{quote(key)}.json"
        hint = f"Check that the pack server at {base_url} is reachable and serves {key}.json."
        try:
            if self._client is not None:
                response = await self._client.get(url, headers=_NO_STORE)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.get(url, headers=_NO_STORE)
        except httpx.HTTPError as exc:
            raise AcquisitionError(f"Failed to fetch decision pack: {url} ({exc})", resource=url, hint=hint) from exc

        if response.status_code == 404:
            return _MISSING, url
        if response.is_error:
            raise AcquisitionError(
                f"Failed to fetch decision pack: {url} ({response.status_code})",
                resource=url,
                hint=hint,
            )
        try:
            return response.json(), url
        except ValueError as exc:
            raise AcquisitionError(f"Failed to parse JSON in {url}: {exc}", resource=url, hint=hint) from exc
