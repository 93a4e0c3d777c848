"""Build identity reported by /health and ``--version``."""

from __future__ import annotations

from demo_service.config import Settings

# Reported as the commit when the build did not record one.
COMMIT_PLACEHOLDER = ":-("

SHORT_HASH_LEN = 7


def commit_hash(settings: Settings) -> str:
    return settings.git_commit_hash or COMMIT_PLACEHOLDER


def short_hash(full_hash: str) -> str:
    """First 7 characters of the hash, or "" unless the hash is longer than that."""
    if len(full_hash) > SHORT_HASH_LEN:
        return full_hash[:SHORT_HASH_LEN]
    return ""


def app_header(settings: Settings) -> str:
    """Value of the ``X-App`` header: ``name:version:short-hash``."""
    return f"{settings.app_name}:{settings.app_version}:{short_hash(commit_hash(settings))}"


def version_string(settings: Settings) -> str:
    return f"{settings.app_version} {commit_hash(settings)}"
