from __future__ import annotations

import io
import shutil
import tarfile
from pathlib import Path, PurePosixPath
from typing import Any

import httpx


class TemplateFetchError(RuntimeError):
    pass


def split_template(template: str) -> tuple[str, str]:
    provider, sep, location = template.partition(":")
    if not sep or not provider or not location:
        raise TemplateFetchError(f"Invalid template reference: {template}")
    return provider, location


def _ensure_new_target(target: Path) -> None:
    if target.exists():
        raise TemplateFetchError(f"Destination {target} already exists.")


class GithubTemplateFetcher:
    """Download ``owner/repo[#ref]`` as a tarball and unpack it into the target."""

    base_url = "https://codeload.github.com"

    def __init__(
        self,
        *,
        client: httpx.Client | None = None,
        timeout_s: float | None = 60.0,
        default_ref: str = "main",
        **_: Any,
    ):
        self.client = client
        self.timeout = timeout_s
        self.default_ref = default_ref

    def archive_url(self, location: str) -> str:
        repo, _, ref = location.partition("#")
        repo = repo.strip("/")
        if repo.count("/") != 1:
            raise TemplateFetchError(f"GitHub template must be owner/repo, got: {location}")
        return f"{self.base_url}/{repo}/tar.gz/{ref or self.default_ref}"

    def fetch(self, location: str, target: Path) -> Path:
        _ensure_new_target(target)
        url = self.archive_url(location)
        try:
            content = self._download(url)
        except httpx.HTTPError as exc:
            raise TemplateFetchError(f"Failed to download template from {url}: {exc}") from exc
        try:
            with tarfile.open(fileobj=io.BytesIO(content), mode="r:gz") as archive:
                _extract_stripped(archive, target)
        except tarfile.TarError as exc:
            shutil.rmtree(target, ignore_errors=True)
            raise TemplateFetchError(f"Template archive from {url} is not a valid tarball.") from exc
        return target

    def _download(self, url: str) -> bytes:
        if self.client is not None:
            response = self.client.get(url, follow_redirects=True)
        else:
            response = httpx.get(url, timeout=self.timeout, follow_redirects=True)
        response.raise_for_status()
        return response.content


class LocalTemplateFetcher:
    """Copy a template directory from the local filesystem."""

    def __init__(self, **_: Any):
        pass

    def fetch(self, location: str, target: Path) -> Path:
        _ensure_new_target(target)
        source = Path(location).expanduser()
        if not source.is_dir():
            raise TemplateFetchError(f"Template directory not found: {source}")
        try:
            shutil.copytree(source, target, ignore=shutil.ignore_patterns(".git"))
        except OSError as exc:
            raise TemplateFetchError(f"Failed to copy template: {exc}") from exc
        return target


def _extract_stripped(archive: tarfile.TarFile, target: Path) -> None:
    root = target.resolve()
    members = []
    for member in archive.getmembers():
        parts = PurePosixPath(member.name).parts[1:]
        if not parts:
            continue
        if member.issym() or member.islnk():
            continue
        destination = (root / Path(*parts)).resolve()
        if destination != root and root not in destination.parents:
            raise TemplateFetchError(f"Template archive member escapes target: {member.name}")
        members.append((member, destination))

    target.mkdir(parents=True)
    for member, destination in members:
        if member.isdir():
            destination.mkdir(parents=True, exist_ok=True)
            continue
        if not member.isfile():
            continue
        destination.parent.mkdir(parents=True, exist_ok=True)
        extracted = archive.extractfile(member)
        if extracted is None:
            continue
        with extracted, destination.open("wb") as handle:
            shutil.copyfileobj(extracted, handle)
