#!/usr/bin/env python3
"""
Upload photos and videos to a Google Drive folder.

CLI wrapper for the uploader module. Photos are compressed and uploaded in
one request; videos go through Drive's resumable protocol in chunks. Several
files are uploaded concurrently.

Usage:
    python scripts/upload.py cake.jpg
    python scripts/upload.py *.jpg speech.mp4 --workers 2
    python scripts/upload.py --manifest manifests/party.yaml
    python scripts/upload.py --photo-data-url capture.txt
"""

import argparse
import dataclasses
import sys
import threading
from pathlib import Path

import yaml

# Add project root to path for imports (before other imports)
_project_root = Path(__file__).parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

from mediadrop.drive import DriveClient, DriveError  # noqa: E402
from mediadrop.progress import UploadProgress  # noqa: E402
from mediadrop.uploader import upload_captured_photo, upload_media_batch  # noqa: E402
from mediadrop.utils.config import get_config  # noqa: E402
from mediadrop.utils.config_loader import load_config, manifest_files, validate_config  # noqa: E402
from mediadrop.utils.logging import get_logger  # noqa: E402

logger = get_logger(__name__)


def parse_args(argv=None):
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        description="Upload photos and videos to Google Drive",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Upload a single photo (compressed to 1920px JPEG)
  %(prog)s cake.jpg

  # Upload photos and videos, two at a time
  %(prog)s cake.jpg guests.png speech.mp4 --workers 2

  # Use 1MB chunks for videos
  %(prog)s speech.mp4 --chunk-size-kb 1024

  # Upload originals without compression
  %(prog)s cake.jpg --no-compress

  # Upload every file listed in a manifest
  %(prog)s --manifest manifests/party.yaml

  # Upload a camera capture saved as a base64 data URL
  %(prog)s --photo-data-url capture.txt
        """,
    )

    parser.add_argument(
        "files",
        nargs="*",
        help="Photo or video file(s) to upload",
    )

    parser.add_argument(
        "--folder-id",
        help="Google Drive folder ID (default: GOOGLE_DRIVE_FOLDER_ID)",
    )

    parser.add_argument(
        "--chunk-size-kb",
        type=int,
        help="Resumable chunk size in KB, a multiple of 256 (default: from config)",
    )

    parser.add_argument(
        "-w",
        "--workers",
        type=int,
        help="Maximum parallel uploads (default: from config)",
    )

    parser.add_argument(
        "--max-width",
        type=int,
        help="Maximum photo width in pixels (default: from config)",
    )

    parser.add_argument(
        "--quality",
        type=int,
        help="JPEG quality 1-95 (default: from config)",
    )

    parser.add_argument(
        "--no-compress",
        action="store_true",
        help="Upload photos as-is",
    )

    parser.add_argument(
        "-m",
        "--manifest",
        help="YAML manifest listing files to upload",
    )

    parser.add_argument(
        "--photo-data-url",
        help="File containing a base64 image data URL to upload as a captured photo",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose output",
    )

    return parser.parse_args(argv)


def build_overrides(args, manifest=None) -> dict:
    """Collect config overrides from a manifest, then from flags (flags win)."""
    overrides = {}

    if manifest:
        if "folder_id" in manifest:
            overrides["drive_folder_id"] = manifest["folder_id"]
        if "chunk_size_kb" in manifest:
            overrides["chunk_size_bytes"] = manifest["chunk_size_kb"] * 1024
        compression = manifest.get("compression") or {}
        if "enabled" in compression:
            overrides["compress_images"] = compression["enabled"]
        if "max_width" in compression:
            overrides["image_max_width"] = compression["max_width"]
        if "quality" in compression:
            overrides["image_quality"] = compression["quality"]

    if args.folder_id:
        overrides["drive_folder_id"] = args.folder_id
    if args.chunk_size_kb is not None:
        overrides["chunk_size_bytes"] = args.chunk_size_kb * 1024
    if args.workers is not None:
        overrides["max_parallel_uploads"] = args.workers
    if args.max_width is not None:
        overrides["image_max_width"] = args.max_width
    if args.quality is not None:
        overrides["image_quality"] = args.quality
    if args.no_compress:
        overrides["compress_images"] = False

    return overrides


def make_progress_printer():
    """Listener printing each 10% step per file."""
    lock = threading.Lock()
    last_step = {}

    def listener(upload_id: str, percent: int) -> None:
        step = percent // 10
        with lock:
            if percent != 0 and last_step.get(upload_id) == step:
                return
            last_step[upload_id] = step
        print(f"  ⏳ {upload_id}: {percent}%")

    return listener


def main(argv=None):
    """Main entry point for upload CLI."""
    args = parse_args(argv)

    # Configure logging verbosity
    if args.verbose:
        import logging

        logging.getLogger("mediadrop").setLevel(logging.DEBUG)

    files = list(args.files)
    manifest = None

    if args.manifest:
        try:
            manifest = load_config(args.manifest)
        except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
            print(f"❌ Manifest error: {e}")
            return 1

        errors = validate_config(manifest)
        if errors:
            print(f"❌ Manifest validation failed ({len(errors)} errors):")
            for error in errors:
                print(f"  • {error}")
            return 1

        files.extend(manifest_files(manifest, base_dir=Path(args.manifest).parent))

    if not files and not args.photo_data_url:
        print("❌ No files to upload (pass files, --manifest or --photo-data-url)")
        return 1

    # Load environment configuration
    try:
        env_config = get_config()
        config = dataclasses.replace(env_config, **build_overrides(args, manifest))
        config.validate()
    except ValueError as e:
        print(f"❌ Configuration error: {e}")
        print("\nMake sure .env file exists with required variables:")
        print("  - GOOGLE_CLIENT_EMAIL")
        print("  - GOOGLE_PRIVATE_KEY")
        print("  - GOOGLE_DRIVE_FOLDER_ID")
        return 1

    client = DriveClient(config)
    progress = UploadProgress()
    progress.add_listener(make_progress_printer())

    try:
        if args.photo_data_url:
            data_url = Path(args.photo_data_url).read_text().strip()
            try:
                result = upload_captured_photo(data_url, client, config, progress)
            except (ValueError, DriveError) as e:
                print(f"❌ Photo upload failed: {e}")
                return 1
            print("✅ Photo uploaded successfully!")
            print(f"  File ID: {result.file_id}")
            print(f"  Name: {result.file_name}")
            if not files:
                return 0

        existing = []
        for file_path in files:
            if Path(file_path).is_file():
                existing.append(file_path)
            else:
                print(f"⚠️  Skipping (not found or not a file): {file_path}")

        if not existing:
            print("❌ No valid files to upload")
            return 1

        print(f"📤 Uploading {len(existing)} file(s) to Google Drive")
        print(f"   Folder: {config.drive_folder_id}")
        print(f"   Workers: {min(config.max_parallel_uploads, len(existing))}")
        print()

        results = upload_media_batch(existing, client, config, progress)

        successful = sum(1 for r in results if r.success)
        failed = len(results) - successful

        # Display results
        print("\n📊 Upload Summary:")
        print(f"  Total: {len(results)}")
        print(f"  ✅ Successful: {successful}")
        print(f"  ❌ Failed: {failed}")

        if successful > 0:
            total_bytes = sum(r.bytes_uploaded for r in results if r.success)
            print(f"  📦 Total size: {total_bytes:,} bytes")
            for result in results:
                if result.success:
                    print(f"  • {result.file_name}: {result.file_id}")

        # Show failed uploads
        if failed > 0:
            print("\n❌ Failed uploads:")
            for result in results:
                if not result.success:
                    print(f"  • {Path(result.local_path).name}: {result.error_message}")

        return 0 if failed == 0 else 1

    except KeyboardInterrupt:
        print("\n⚠️  Upload cancelled by user")
        return 130

    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        print(f"❌ Unexpected error: {e}")
        if args.verbose:
            import traceback

            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
