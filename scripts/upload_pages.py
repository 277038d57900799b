#!/usr/bin/env python3
"""
Upload page templates to R2.

Walks a local directory of templates and uploads every file the route
table references, keyed by its resource path (e.g. pages/login.html).

Usage:
    python scripts/upload_pages.py --dir web
    python scripts/upload_pages.py --dir web --dry-run

Requires:
    - .env file with R2 credentials
    - Templates laid out as <dir>/pages/...
"""

import asyncio
import sys
from pathlib import Path

# Add src to path so we can import our modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

from src.config.settings import Settings
from src.core.navigation import RouteTable
from src.infrastructure.storage.client import R2PageStorageClient, StorageConfig, StorageError


def collect_templates(root: Path, resources: set[str]) -> tuple[dict[str, str], list[str]]:
    """
    Read the templates for `resources` from under `root`.

    Returns (resource -> content, missing resources).
    """
    found = {}
    missing = []

    for resource in sorted(resources):
        path = root / resource
        if not path.is_file():
            missing.append(resource)
            continue
        found[resource] = path.read_text(encoding='utf-8')

    return found, missing


async def upload_templates(templates: dict[str, str], settings: Settings) -> bool:
    missing_fields = [
        name for name, value in (
            ("R2_ACCESS_KEY_ID", settings.r2_access_key_id),
            ("R2_SECRET_ACCESS_KEY", settings.r2_secret_access_key),
        ) if not value
    ]
    if missing_fields:
        print(f"ERROR: Missing {', '.join(missing_fields)}")
        return False

    client = R2PageStorageClient(StorageConfig(
        access_key_id=settings.r2_access_key_id,
        secret_access_key=settings.r2_secret_access_key,
        bucket_name=settings.r2_bucket_name,
        endpoint_url=settings.r2_endpoint,
        prefix=settings.pages_prefix,
    ))

    uploaded = 0
    errors = 0

    for resource, content in templates.items():
        try:
            key = await client.upload_page(resource, content)
            uploaded += 1
            print(f"[OK] Uploaded: {key}")
        except StorageError as e:
            errors += 1
            print(f"[ERR] Error uploading {resource}: {e}")

    print(f"\n=== Upload Complete ===")
    print(f"Uploaded: {uploaded}")
    print(f"Errors: {errors}")

    return errors == 0


def main():
    import argparse

    parser = argparse.ArgumentParser(description='Upload page templates to R2')
    parser.add_argument('--dir', default='web', help='Directory containing pages/')
    parser.add_argument('--dry-run', action='store_true', help='List templates only, don\'t upload')
    args = parser.parse_args()

    root = Path(args.dir)
    if not root.is_dir():
        # Try relative to project root
        root = Path(__file__).parent.parent / args.dir

    if not root.is_dir():
        print(f"ERROR: Cannot find {args.dir}")
        sys.exit(1)

    resources = set(RouteTable().routes.values())
    templates, missing = collect_templates(root, resources)

    print(f"Found {len(templates)} of {len(resources)} templates in {root}")
    for resource in missing:
        print(f"  missing: {resource}")

    if not templates:
        print("ERROR: No templates to upload")
        sys.exit(1)

    if args.dry_run:
        print("\n=== DRY RUN - Nothing will be uploaded ===\n")
        for resource, content in templates.items():
            print(f"Would upload: {resource} ({len(content)} chars)")
        sys.exit(0)

    success = asyncio.run(upload_templates(templates, Settings()))

    sys.exit(0 if success else 1)


if __name__ == '__main__':
    main()
