"""
External Asset Cleaner - removes student photographs from the media host.

The host is any S3-compatible object store (Cloudflare R2, AWS S3),
reached through boto3. Photos are stored under `students/{prn}/photo_...`,
so after a student's photo is deleted its `students/{prn}` folder (prefix)
is removed as well.

This runs AFTER the reset transaction commits. It is best-effort and
at-most-once: every reference becomes a CleanupTask whose outcome is
tracked individually, failures are collected into the CleanupSummary for
manual follow-up, and nothing here is ever raised back into the reset.
"""

import logging
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import BaseModel

from portal.core.config import get_settings
from portal.core.errors import ExternalCleanupError
from portal.models.domain import CleanupFailure, CleanupSummary

logger = logging.getLogger(__name__)


class AssetDeletion(str, Enum):
    deleted = "deleted"
    failed = "failed"


class TaskKind(str, Enum):
    asset = "asset"
    folder = "folder"


class CleanupTask(BaseModel):
    """One post-commit side effect and its outcome."""
    reference: str
    kind: TaskKind = TaskKind.asset
    outcome: Optional[AssetDeletion] = None
    reason: Optional[str] = None


def extract_folder_path(reference: str) -> Optional[str]:
    """
    Folder that holds an asset, when it is nested.

    students/2301150323/photo_file -> students/2301150323
    students/photo_file            -> None (no per-student folder)
    """
    if not reference:
        return None
    parts = reference.split("/")
    if len(parts) >= 3:
        return "/".join(parts[:-1])
    return None


class ExternalAssetCleaner:
    """
    Deletes assets and folders on the media host.

    Args:
        client: boto3 S3 client (None when no host is configured)
        bucket: bucket holding the assets
        batch_size: keys per delete_objects call
    """

    def __init__(self, client: Any = None, bucket: Optional[str] = None, batch_size: int = 100):
        self.client = client
        self.bucket = bucket
        self.batch_size = max(1, min(batch_size, 1000))  # S3 caps delete_objects at 1000 keys

    @property
    def configured(self) -> bool:
        return self.client is not None and bool(self.bucket)

    def _require_host(self, reference: str) -> None:
        if not self.configured:
            raise ExternalCleanupError(reference, "asset host not configured")

    def test_connection(self) -> bool:
        """True if the bucket is reachable with the configured credentials."""
        if not self.configured:
            return False
        try:
            self.client.head_bucket(Bucket=self.bucket)
        except (BotoCoreError, ClientError):
            logger.exception("Asset host connection failed")
            return False
        return True

    # ------------------------------------------------------------
    # SINGLE / BULK ASSETS
    # ------------------------------------------------------------

    def delete_asset(self, reference: str) -> AssetDeletion:
        try:
            self._require_host(reference)
            self.client.delete_object(Bucket=self.bucket, Key=reference)
        except (ExternalCleanupError, BotoCoreError, ClientError) as e:
            logger.warning("Asset delete failed for %s: %s", reference, e)
            return AssetDeletion.failed
        return AssetDeletion.deleted

    def delete_assets(self, references: List[str]) -> Dict[str, Optional[str]]:
        """
        Bulk delete in batches.

        Returns:
            reference -> None on success, or the failure reason
        """
        outcome: Dict[str, Optional[str]] = {}
        for i in range(0, len(references), self.batch_size):
            batch = references[i:i + self.batch_size]
            batch_no = i // self.batch_size + 1
            try:
                self._require_host(batch[0])
                response = self.client.delete_objects(
                    Bucket=self.bucket,
                    Delete={"Objects": [{"Key": key} for key in batch], "Quiet": True},
                )
            except ExternalCleanupError as e:
                outcome.update({key: e.reason for key in batch})
                continue
            except (BotoCoreError, ClientError) as e:
                logger.error("Asset batch %d failed: %s", batch_no, e)
                outcome.update({key: str(e) for key in batch})
                continue

            errors = {err.get("Key"): err.get("Message") or err.get("Code") or "unknown error"
                      for err in response.get("Errors", [])}
            for key in batch:
                outcome[key] = errors.get(key)
            if errors:
                logger.warning("Asset batch %d: %d of %d keys failed", batch_no, len(errors), len(batch))
        return outcome

    # ------------------------------------------------------------
    # FOLDERS
    # ------------------------------------------------------------

    def delete_folder(self, reference: str) -> int:
        """
        Delete every object under the `reference/` prefix.

        Returns:
            number of objects removed

        Raises:
            ExternalCleanupError if listing or deleting fails
        """
        self._require_host(reference)
        prefix = reference.rstrip("/") + "/"
        keys: List[str] = []
        request: Dict[str, Any] = {"Bucket": self.bucket, "Prefix": prefix}
        try:
            while True:
                page = self.client.list_objects_v2(**request)
                keys.extend(obj["Key"] for obj in page.get("Contents", []))
                if not page.get("IsTruncated"):
                    break
                request["ContinuationToken"] = page["NextContinuationToken"]
        except (BotoCoreError, ClientError) as e:
            raise ExternalCleanupError(reference, str(e)) from e

        if not keys:
            return 0
        failures = {k: reason for k, reason in self.delete_assets(keys).items() if reason}
        if failures:
            raise ExternalCleanupError(reference, f"{len(failures)} objects could not be deleted")
        return len(keys)

    # ------------------------------------------------------------
    # POST-COMMIT TASK LIST
    # ------------------------------------------------------------

    def run_post_commit(self, references: Iterable[str]) -> CleanupSummary:
        """
        Delete every asset, then the folders they lived in.
        Never raises; per-task outcomes are summarized.
        """
        asset_tasks = [CleanupTask(reference=ref) for ref in dict.fromkeys(r for r in references if r)]
        if not asset_tasks:
            return CleanupSummary()

        if not self.configured:
            logger.warning("Asset host not configured; %d assets left for manual cleanup", len(asset_tasks))

        outcome = self.delete_assets([t.reference for t in asset_tasks])
        for task in asset_tasks:
            reason = outcome.get(task.reference)
            task.outcome = AssetDeletion.failed if reason else AssetDeletion.deleted
            task.reason = reason

        folders = dict.fromkeys(
            folder
            for folder in (extract_folder_path(t.reference) for t in asset_tasks if t.outcome == AssetDeletion.deleted)
            if folder
        )
        folder_tasks = [CleanupTask(reference=f, kind=TaskKind.folder) for f in folders]
        for task in folder_tasks:
            try:
                self.delete_folder(task.reference)
                task.outcome = AssetDeletion.deleted
            except ExternalCleanupError as e:
                logger.warning("Folder delete failed (%s): %s", task.reference, e.reason)
                task.outcome = AssetDeletion.failed
                task.reason = e.reason

        return summarize(asset_tasks + folder_tasks)


def summarize(tasks: List[CleanupTask]) -> CleanupSummary:
    assets = [t for t in tasks if t.kind == TaskKind.asset]
    folders = [t for t in tasks if t.kind == TaskKind.folder]
    return CleanupSummary(
        deleted=sum(1 for t in assets if t.outcome == AssetDeletion.deleted),
        failed=sum(1 for t in assets if t.outcome != AssetDeletion.deleted),
        folders_deleted=sum(1 for t in folders if t.outcome == AssetDeletion.deleted),
        failures=[
            CleanupFailure(reference=t.reference, reason=t.reason or "unknown error")
            for t in tasks if t.outcome != AssetDeletion.deleted
        ],
    )


def get_asset_cleaner() -> ExternalAssetCleaner:
    """Build a cleaner from settings; without a bucket every task reports failed."""
    settings = get_settings()
    if not settings.asset_host_configured:
        return ExternalAssetCleaner(batch_size=settings.asset_cleanup_batch_size)

    session = boto3.session.Session()
    client = session.client(
        service_name="s3",
        endpoint_url=settings.asset_host_endpoint_url,
        aws_access_key_id=settings.asset_host_access_key,
        aws_secret_access_key=settings.asset_host_secret_key,
    )
    return ExternalAssetCleaner(
        client=client,
        bucket=settings.asset_host_bucket,
        batch_size=settings.asset_cleanup_batch_size,
    )
