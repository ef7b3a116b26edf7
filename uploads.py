"""
Product image storage.

Three interchangeable backends share one small interface, ``store(image,
base_url) -> ProductImage`` and ``delete(image)``:

- ``DiskStorage`` writes under ``<uploads_dir>/products`` (served at /uploads)
- ``MongoBlobStorage`` keeps the bytes in the ``product_image`` collection
- ``CloudinaryStorage`` pushes to Cloudinary

``ImageStore`` picks the active backend once at startup and routes deletes to
whichever backend produced a given image.
"""

import logging
import os
import random
import time
from dataclasses import dataclass
from typing import Dict, Optional

import cloudinary
import cloudinary.uploader
from bson import Binary
from fastapi import Request, UploadFile

from database import collection, find_by_id, utcnow
from errors import NotFoundError, UploadError
from schemas import ProductImage

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 20 * 1024 * 1024
ALLOWED_FORMATS = ["jpg", "jpeg", "png", "gif", "webp"]
CLOUDINARY_FOLDER = "storefront/products"


@dataclass
class ImageFile:
    filename: str
    content_type: str
    data: bytes


def read_upload(upload: UploadFile) -> ImageFile:
    """Validate an uploaded file and load it into memory."""
    content_type = upload.content_type or ""
    if not content_type.startswith("image/"):
        raise UploadError("Only image files are allowed!")
    data = upload.file.read(MAX_FILE_SIZE + 1)
    if len(data) > MAX_FILE_SIZE:
        raise UploadError("File too large. Maximum size is 20MB")
    return ImageFile(filename=upload.filename or "image", content_type=content_type, data=data)


def has_file(upload: Optional[UploadFile]) -> bool:
    # browsers send an empty part when no file is picked
    return upload is not None and bool(upload.filename)


def get_base_url(request: Request) -> str:
    backend_url = request.app.state.settings.backend_url
    if backend_url:
        return backend_url.rstrip("/")
    proto = request.headers.get("x-forwarded-proto") or request.url.scheme
    host = request.headers.get("host") or request.url.netloc
    return f"{proto}://{host}"


def unique_filename(filename: str) -> str:
    stem, ext = os.path.splitext(os.path.basename(filename))
    return f"{stem or 'image'}-{int(time.time() * 1000)}-{random.randint(0, 10**9)}{ext}"


class DiskStorage:
    name = "disk"

    def __init__(self, uploads_dir: str):
        self.products_dir = os.path.join(uploads_dir, "products")
        os.makedirs(self.products_dir, exist_ok=True)

    def path_for(self, filename: str) -> str:
        return os.path.join(self.products_dir, os.path.basename(filename))

    def store(self, image: ImageFile, base_url: str) -> ProductImage:
        filename = unique_filename(image.filename)
        with open(self.path_for(filename), "wb") as fh:
            fh.write(image.data)
        return ProductImage(url=f"{base_url}/uploads/products/{filename}", public_id=filename, storage=self.name)

    def delete(self, image: ProductImage) -> bool:
        if not image.public_id:
            return False
        path = self.path_for(image.public_id)
        if not os.path.exists(path):
            return False
        os.remove(path)
        return True


class MongoBlobStorage:
    name = "mongodb"
    collection_name = "product_image"

    def store(self, image: ImageFile, base_url: str) -> ProductImage:
        result = collection(self.collection_name).insert_one({
            "filename": image.filename,
            "content_type": image.content_type,
            "data": Binary(image.data),
            "created_at": utcnow(),
        })
        image_id = str(result.inserted_id)
        return ProductImage(url=f"{base_url}/api/products/images/{image_id}", public_id=image_id, storage=self.name)

    def load(self, image_id: str) -> ImageFile:
        doc = find_by_id(self.collection_name, image_id)
        if not doc:
            raise NotFoundError("Image")
        return ImageFile(filename=doc.get("filename", "image"), content_type=doc["content_type"], data=bytes(doc["data"]))

    def delete(self, image: ProductImage) -> bool:
        doc = find_by_id(self.collection_name, image.public_id or "")
        if not doc:
            return False
        collection(self.collection_name).delete_one({"_id": doc["_id"]})
        return True


class CloudinaryStorage:
    name = "cloudinary"

    def __init__(self, cloud_name: str, api_key: str, api_secret: str):
        cloudinary.config(cloud_name=cloud_name, api_key=api_key, api_secret=api_secret, secure=True)

    def store(self, image: ImageFile, base_url: str) -> ProductImage:
        result = cloudinary.uploader.upload(
            image.data,
            folder=CLOUDINARY_FOLDER,
            allowed_formats=ALLOWED_FORMATS,
            transformation=[
                {"width": 800, "height": 600, "crop": "limit", "quality": "auto"},
                {"fetch_format": "auto"},
            ],
        )
        return ProductImage(url=result["secure_url"], public_id=result["public_id"], storage=self.name)

    def delete(self, image: ProductImage) -> bool:
        if not image.public_id:
            return False
        result = cloudinary.uploader.destroy(image.public_id)
        return result.get("result") == "ok"


class ImageStore:
    """The upload backend chosen at startup, plus every backend that can clean up."""

    def __init__(self, active, backends: Dict[str, object]):
        self.active = active
        self.backends = backends

    @classmethod
    def from_settings(cls, settings) -> "ImageStore":
        backends = {
            DiskStorage.name: DiskStorage(settings.uploads_dir),
            MongoBlobStorage.name: MongoBlobStorage(),
        }
        if settings.cloudinary_enabled:
            backends[CloudinaryStorage.name] = CloudinaryStorage(
                settings.cloudinary_cloud_name, settings.cloudinary_api_key, settings.cloudinary_api_secret
            )
            active = backends[CloudinaryStorage.name]
        elif settings.upload_storage == MongoBlobStorage.name:
            active = backends[MongoBlobStorage.name]
        else:
            active = backends[DiskStorage.name]
        logger.info("Using %s image storage", active.name)
        return cls(active, backends)

    @property
    def blobs(self) -> MongoBlobStorage:
        return self.backends[MongoBlobStorage.name]

    def store(self, image: ImageFile, base_url: str) -> ProductImage:
        return self.active.store(image, base_url)

    def delete(self, image: Optional[dict]) -> bool:
        """Remove a stored asset. Failures are logged, never raised."""
        if not image:
            return False
        ref = ProductImage(**image)
        backend = self.backends.get(ref.storage)
        if backend is None:
            logger.warning("No %s backend configured, leaving image %s in place", ref.storage, ref.public_id)
            return False
        try:
            return backend.delete(ref)
        except Exception:
            logger.exception("Error cleaning up image %s", ref.public_id)
            return False
