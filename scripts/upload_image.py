#!/usr/bin/env python3
"""
Upload a local image to B2 and print its public URL.

Handy for checking credentials and bucket settings without starting the
API server.

Usage:
    python scripts/upload_image.py path/to/image.png
    python scripts/upload_image.py path/to/image.png --delete

Requires:
    - .env file with B2_APPLICATION_KEY_ID, B2_APPLICATION_KEY,
      B2_BUCKET_ID and B2_BUCKET_NAME (or B2_MOCK_MODE=true)
"""

import asyncio
import sys
from pathlib import Path

# Add src to path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from src.api.dependencies import build_storage_service  # noqa: E402
from src.config.settings import Settings  # noqa: E402
from src.core.storage.errors import StorageError  # noqa: E402
from src.core.storage.models import UploadItem  # noqa: E402
from src.core.storage.naming import split_name  # noqa: E402


async def run(image_path: Path, delete_after: bool) -> bool:
    settings = Settings()
    service = build_storage_service(settings)
    options = service.options

    payload = image_path.read_bytes()
    item = UploadItem(
        payload=payload,
        original_name=image_path.name,
        extension=split_name(image_path.name)[1],
    )

    print("Configuration:")
    print(f"  Bucket: {options.bucket.bucket_name}")
    print(f"  Bucket ID: {options.bucket.bucket_id}")
    print(f"  Custom domain: {options.custom_domain or 'none'}")
    print(f"  Path prefix: {options.path_prefix or 'none'}")
    print(f"  Mock mode: {settings.b2_mock_mode}")
    print("")
    print(f"File: {item.original_name} ({len(payload) / 1024:.2f} KB)")
    print("")

    try:
        await service.upload_batch([item])
    except StorageError as e:
        print(f"ERROR: {e}")
        return False

    if not item.succeeded:
        print(f"ERROR: {item.error}")
        return False

    print(f"[OK] Storage key: {item.storage_key}")
    print(f"[OK] URL: {item.url}")

    if delete_after:
        try:
            outcome = await service.delete_by_url(item.url)
        except (StorageError, ValueError) as e:
            print(f"ERROR deleting: {e}")
            return False
        print(f"[OK] Deleted: {outcome.message}")

    return True


def main():
    import argparse

    parser = argparse.ArgumentParser(description='Upload an image to Backblaze B2')
    parser.add_argument('image', help='Path to the image to upload')
    parser.add_argument('--delete', action='store_true', help='Delete the object again after upload')
    args = parser.parse_args()

    image_path = Path(args.image)
    if not image_path.is_file():
        print(f"ERROR: Cannot find {args.image}")
        sys.exit(1)

    success = asyncio.run(run(image_path, args.delete))
    sys.exit(0 if success else 1)


if __name__ == '__main__':
    main()
