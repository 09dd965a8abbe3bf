# app/services/media_store.py
import logging
import time

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from fastapi import UploadFile
from slugify import slugify

logger = logging.getLogger(__name__)


def build_r2_client(account_id: str, access_key_id: str, secret_access_key: str):
    return boto3.client(
        "s3",
        endpoint_url=f'https://{account_id}.r2.cloudflarestorage.com',
        aws_access_key_id=access_key_id,
        aws_secret_access_key=secret_access_key,
        region_name="auto"
    )


class R2MediaStore:
    """Movie files and posters on Cloudflare R2, addressed by object key."""

    def __init__(self, client, bucket: str, public_base: str = ""):
        self.client = client
        self.bucket = bucket
        self.public_base = public_base

    def _upload(self, file: UploadFile, folder: str, title: str) -> str:
        ext = file.filename.split(".")[-1].lower()
        key = f"{folder}/{slugify(title)}_{int(time.time())}.{ext}"

        self.client.upload_fileobj(
            file.file,
            self.bucket,
            key,
            ExtraArgs={"ContentType": file.content_type}
        )
        return key

    def upload_movie(self, file: UploadFile, title: str) -> str:
        return self._upload(file, "movies", title)

    def upload_poster(self, file: UploadFile, title: str) -> str:
        return self._upload(file, "posters", title)

    def delete(self, key: str) -> bool:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Deleting {key} from R2 failed: {e}")
            return False
        return True

    def presigned_url(self, key: str, expires: int = 3600) -> str:
        return self.client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.bucket, "Key": key},
            ExpiresIn=expires
        )

    def stream_url(self, key: str, expires: int) -> str:
        """Playback locator for a movie file, valid for ``expires`` seconds."""
        if self.public_base:
            return f"{self.public_base.rstrip('/')}/{key}"
        # presigned GETs cap at 7 days
        return self.presigned_url(key, expires=max(1, min(expires, 7 * 24 * 3600)))
