"""
Binary storage for generated PDFs: a local directory, or S3 when a bucket is configured.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, Optional

import boto3
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)

_MISSING_S3_CODES = {"NoSuchKey", "404", "NotFound"}


def is_plain_filename(filename: str) -> bool:
    return bool(filename) and Path(filename).name == filename and filename not in (".", "..")


class PdfStorage:
    def __init__(
        self,
        base_dir: Path,
        s3_bucket: Optional[str] = None,
        s3_prefix: Optional[str] = None,
        s3_client=None,
    ):
        self.generated_dir = Path(base_dir) / "generated"
        self.generated_dir.mkdir(parents=True, exist_ok=True)

        self.s3_bucket = s3_bucket if s3_bucket is not None else os.getenv("DOCFILL_S3_BUCKET")
        self.s3_prefix = s3_prefix if s3_prefix is not None else os.getenv("DOCFILL_S3_PREFIX", "docfill/")
        self.s3 = s3_client
        if self.s3_bucket and self.s3 is None:
            self.s3 = boto3.client("s3")

    def _key(self, filename: str) -> str:
        return f"{self.s3_prefix}{filename}"

    def _check(self, filename: str) -> None:
        if not is_plain_filename(filename):
            raise ValueError(f"Invalid PDF file name: {filename!r}")

    def save(self, filename: str, pdf_bytes: bytes) -> Dict[str, str]:
        self._check(filename)
        if self.s3_bucket:
            key = self._key(filename)
            self.s3.put_object(Bucket=self.s3_bucket, Key=key, Body=pdf_bytes, ContentType="application/pdf")
            logger.info("Stored %s in s3://%s/%s", filename, self.s3_bucket, key)
            return {"s3_bucket": self.s3_bucket, "s3_key": key}

        target = self.generated_dir / filename
        with target.open("wb") as f:
            f.write(pdf_bytes)
        logger.info("Stored %s at %s", filename, target)
        return {"file_path": str(target)}

    def load(self, filename: str) -> Optional[bytes]:
        if not is_plain_filename(filename):
            return None
        if self.s3_bucket:
            try:
                obj = self.s3.get_object(Bucket=self.s3_bucket, Key=self._key(filename))
            except ClientError as exc:
                if exc.response.get("Error", {}).get("Code") in _MISSING_S3_CODES:
                    return None
                raise
            return obj["Body"].read()

        file_path = self.generated_dir / filename
        if not file_path.exists():
            return None
        with file_path.open("rb") as f:
            return f.read()

    def delete(self, filename: str) -> bool:
        """Remove a stored PDF. A missing file is not an error; returns whether something was removed."""
        if not is_plain_filename(filename):
            return False
        if self.s3_bucket:
            self.s3.delete_object(Bucket=self.s3_bucket, Key=self._key(filename))
            return True

        file_path = self.generated_dir / filename
        try:
            file_path.unlink()
        except FileNotFoundError:
            return False
        logger.info("Deleted %s", file_path)
        return True
