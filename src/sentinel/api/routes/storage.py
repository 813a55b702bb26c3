"""
Public blob URLs.

Only the avatars bucket is public; everything else goes through the
authenticated file routes.
"""

from fastapi import APIRouter, HTTPException, status
from fastapi.responses import Response

from sentinel.api.deps import Blobs
from sentinel.storage.blobs import AVATARS_BUCKET, guess_content_type

router = APIRouter()

PUBLIC_BUCKETS = {AVATARS_BUCKET}


@router.get("/{bucket}/{path:path}")
async def public_object(bucket: str, path: str, blobs: Blobs):
    if bucket not in PUBLIC_BUCKETS:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Object not found")
    data = await blobs.download(bucket, path)
    return Response(
        content=data,
        media_type=guess_content_type(path),
        headers={"Cache-Control": "public, max-age=3600"},
    )
