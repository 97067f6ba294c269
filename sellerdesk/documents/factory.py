"""Factory for document store backends."""

from sellerdesk.config.settings import Settings
from sellerdesk.documents.github_store import GitHubDocumentStore
from sellerdesk.documents.store import DocumentStore, FallbackDocumentStore, LocalSnapshotStore
from sellerdesk.logging.audit import get_logger

logger = get_logger("documents")


def get_document_store(settings: Settings) -> DocumentStore:
    """Pick the backend from configuration.

    "local" keeps everything in the snapshot directory. "github" talks to the
    remote host, backed by the snapshot when SNAPSHOT_DIR is set, and degrades
    to snapshot-only when the GitHub credentials are missing.
    """
    backend = settings.document_store_backend
    snapshot_dir = settings.snapshot_dir or ".snapshots"

    if backend == "local":
        return LocalSnapshotStore(snapshot_dir)

    if backend != "github":
        raise ValueError(f"Unknown document store backend: {backend}")

    if not settings.github_configured:
        logger.warning(
            "GitHub document store not configured, using local snapshot only",
            extra={"audit_data": {"snapshot_dir": snapshot_dir}},
        )
        return LocalSnapshotStore(snapshot_dir)

    remote = GitHubDocumentStore(
        token=settings.github_token,
        owner=settings.github_owner,
        repo=settings.github_repo,
        branch=settings.github_branch,
        api_url=settings.github_api_url,
        timeout=settings.upstream_timeout_seconds,
    )
    if not settings.snapshot_dir:
        return remote
    return FallbackDocumentStore(remote, LocalSnapshotStore(settings.snapshot_dir))
