from lendflow.core.settings import settings
from lendflow.services.storage.adapter import (
    CloudinaryStorageAdapter,
    LocalFileSystemAdapter,
    StorageAdapter,
)


def get_storage_adapter() -> StorageAdapter:
    provider = settings.storage_provider

    if provider == "cloudinary":
        if not (
            settings.cloudinary_cloud_name
            and settings.cloudinary_api_key
            and settings.cloudinary_api_secret
        ):
            raise ValueError("Cloudinary credentials are not configured")
        return CloudinaryStorageAdapter(
            cloud_name=settings.cloudinary_cloud_name,
            api_key=settings.cloudinary_api_key,
            api_secret=settings.cloudinary_api_secret,
            folder=settings.cloudinary_kyc_folder,
            expiry_seconds=settings.upload_url_expiry_seconds,
        )

    return LocalFileSystemAdapter(
        base_path=settings.local_upload_dir,
        base_url=settings.public_base_url,
        signing_key=settings.secret_key,
        expiry_seconds=settings.upload_url_expiry_seconds,
    )
