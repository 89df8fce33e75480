from __future__ import annotations

import logging
import re
from contextlib import contextmanager
from typing import Any, BinaryIO, Iterable, Iterator

import requests

from .errors import FetchError, ResolutionError
from .layers import layer_from_manifest_entry
from .models import ImageRef, LayerDescriptor, ManifestHandle

LOGGER = logging.getLogger(__name__)

DOCKER_HUB = "docker.io"
DOCKER_HUB_API = "registry-1.docker.io"

OCI_MANIFEST = "application/vnd.oci.image.manifest.v1+json"
OCI_INDEX = "application/vnd.oci.image.index.v1+json"
DOCKER_MANIFEST = "application/vnd.docker.distribution.manifest.v2+json"
DOCKER_MANIFEST_LIST = "application/vnd.docker.distribution.manifest.list.v2+json"
MANIFEST_MEDIA_TYPES = (OCI_MANIFEST, DOCKER_MANIFEST, OCI_INDEX, DOCKER_MANIFEST_LIST)
INDEX_MEDIA_TYPES = {OCI_INDEX, DOCKER_MANIFEST_LIST}

_REPOSITORY_RE = re.compile(r"^[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*(?:/[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*)*$")
_TAG_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]{0,127}$")
_DIGEST_RE = re.compile(r"^[a-z0-9]+(?:[+._-][a-z0-9]+)*:[A-Fa-f0-9=_-]{32,}$")
_CHALLENGE_PARAM_RE = re.compile(r'(\w+)="([^"]*)"')


def _looks_like_registry(component: str) -> bool:
    return "." in component or ":" in component or component == "localhost"


def parse_reference(reference: str) -> ImageRef:
    """Parse ``[registry/]repository[:tag][@digest]`` with Docker defaults."""
    value = (reference or "").strip()
    for prefix in ("docker://", "//"):
        if value.startswith(prefix):
            value = value[len(prefix):]
    if not value or any(ch.isspace() for ch in value):
        raise ResolutionError(f"Invalid image reference: {reference!r}")

    digest: str | None = None
    if "@" in value:
        value, digest = value.split("@", 1)
        if not _DIGEST_RE.match(digest):
            raise ResolutionError(f"Invalid digest in reference: {reference!r}")

    tag: str | None = None
    slash = value.rfind("/")
    colon = value.rfind(":")
    if colon > slash:
        value, tag = value[:colon], value[colon + 1:]
        if not _TAG_RE.match(tag):
            raise ResolutionError(f"Invalid tag in reference: {reference!r}")

    first, _, rest = value.partition("/")
    if rest and _looks_like_registry(first):
        registry, repository = first, rest
    else:
        registry, repository = DOCKER_HUB, value
    if registry == DOCKER_HUB and "/" not in repository:
        repository = f"library/{repository}"
    if not _REPOSITORY_RE.match(repository):
        raise ResolutionError(f"Invalid repository name in reference: {reference!r}")

    if tag is None and digest is None:
        tag = "latest"
    return ImageRef(registry=registry, repository=repository, tag=tag, digest=digest)


def _parse_challenge(header: str) -> dict[str, str] | None:
    scheme, _, params = (header or "").strip().partition(" ")
    if scheme.lower() != "bearer":
        return None
    return {key.lower(): value for key, value in _CHALLENGE_PARAM_RE.findall(params)}


class RegistryClient:
    """Minimal read-only client for the OCI distribution API.

    Only anonymous pulls are supported. When a registry answers ``401`` with
    a bearer challenge, an anonymous token is requested and the request is
    replayed once.
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        *,
        timeout_sec: int = 120,
        user_agent: str = "modelcard-extract",
        platform_os: str = "linux",
        platform_arch: str = "amd64",
        insecure_registries: Iterable[str] = (),
    ) -> None:
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": user_agent})
        self.timeout_sec = timeout_sec
        self.platform_os = platform_os
        self.platform_arch = platform_arch
        self.insecure_registries = set(insecure_registries)
        self._tokens: dict[tuple[str, str], str] = {}

    def _base_url(self, image: ImageRef) -> str:
        host = DOCKER_HUB_API if image.registry == DOCKER_HUB else image.registry
        scheme = "http" if image.registry in self.insecure_registries else "https"
        return f"{scheme}://{host}/v2/{image.repository}"

    def _fetch_anonymous_token(self, challenge: dict[str, str], image: ImageRef) -> str | None:
        realm = challenge.get("realm")
        if not realm:
            return None
        params = {"scope": challenge.get("scope") or f"repository:{image.repository}:pull"}
        if challenge.get("service"):
            params["service"] = challenge["service"]
        response = self.session.get(realm, params=params, timeout=self.timeout_sec)
        response.raise_for_status()
        payload = response.json()
        return payload.get("token") or payload.get("access_token")

    def _get(
        self,
        image: ImageRef,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        stream: bool = False,
    ) -> requests.Response:
        headers = dict(headers or {})
        key = (image.registry, image.repository)
        if key in self._tokens:
            headers["Authorization"] = f"Bearer {self._tokens[key]}"
        response = self.session.get(url, headers=headers, timeout=self.timeout_sec, stream=stream)
        if response.status_code != 401 or "Authorization" in headers:
            return response

        challenge = _parse_challenge(response.headers.get("WWW-Authenticate", ""))
        if challenge is None:
            return response
        token = self._fetch_anonymous_token(challenge, image)
        if not token:
            return response
        response.close()
        self._tokens[key] = token
        headers["Authorization"] = f"Bearer {token}"
        return self.session.get(url, headers=headers, timeout=self.timeout_sec, stream=stream)

    def _select_platform(self, index: dict[str, Any], reference: str) -> str:
        entries = index.get("manifests") or []
        if not entries:
            raise ResolutionError(f"Image index for {reference} lists no manifests")
        for entry in entries:
            platform = entry.get("platform") or {}
            if platform.get("os") == self.platform_os and platform.get("architecture") == self.platform_arch:
                return str(entry["digest"])
        LOGGER.warning(
            "No %s/%s manifest in index for %s, using first entry",
            self.platform_os,
            self.platform_arch,
            reference,
        )
        return str(entries[0]["digest"])

    def _fetch_manifest(self, image: ImageRef, manifest_ref: str) -> tuple[dict[str, Any], str, str | None]:
        url = f"{self._base_url(image)}/manifests/{manifest_ref}"
        with self._get(image, url, headers={"Accept": ", ".join(MANIFEST_MEDIA_TYPES)}) as response:
            response.raise_for_status()
            payload = response.json()
            content_type = response.headers.get("Content-Type", "").split(";")[0].strip()
            digest = response.headers.get("Docker-Content-Digest")
        if not isinstance(payload, dict):
            raise ResolutionError(f"Manifest for {image} is not a JSON object")
        media_type = str(payload.get("mediaType") or content_type)
        return payload, media_type, digest

    def resolve(self, reference: str) -> ManifestHandle:
        image = parse_reference(reference)
        try:
            payload, media_type, digest = self._fetch_manifest(image, image.manifest_ref)
            if media_type in INDEX_MEDIA_TYPES or "manifests" in payload:
                digest = self._select_platform(payload, reference)
                payload, media_type, _ = self._fetch_manifest(image, digest)
        except requests.RequestException as exc:
            raise ResolutionError(f"Failed to resolve {reference}: {exc}") from exc
        except (KeyError, ValueError) as exc:
            raise ResolutionError(f"Unreadable manifest for {reference}: {exc}") from exc
        LOGGER.info("Resolved %s to %s (%s)", reference, digest or image.manifest_ref, media_type)
        return ManifestHandle(image=image, digest=digest, media_type=media_type, manifest=payload)

    def layers(self, handle: ManifestHandle) -> list[LayerDescriptor]:
        entries = handle.manifest.get("layers")
        if not isinstance(entries, list):
            raise FetchError(f"Manifest for {handle.image} has no layer list ({handle.media_type})")
        return [layer_from_manifest_entry(entry) for entry in entries]

    @contextmanager
    def open_blob(self, handle: ManifestHandle, digest: str) -> Iterator[BinaryIO]:
        url = f"{self._base_url(handle.image)}/blobs/{digest}"
        try:
            response = self._get(handle.image, url, stream=True)
        except requests.RequestException as exc:
            raise FetchError(f"Failed to fetch blob {digest} of {handle.image}: {exc}") from exc
        with response:
            try:
                response.raise_for_status()
            except requests.HTTPError as exc:
                raise FetchError(f"Failed to fetch blob {digest} of {handle.image}: {exc}") from exc
            yield response.raw
