#!/usr/bin/env python3
"""CLI wrapper for the material generation client.

Usage:
    python material_cli.py --prompt "mossy cobblestone"
    python material_cli.py --prompt "rusted steel plate" --image ref.jpg --base-only
"""

from __future__ import annotations

import argparse
import asyncio
import functools
import json
import sys
import time
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv

import log_setup
import material_core
from material_retry import with_retry
from material_types import DecodedImage, Failure, MaterialBundle

# Output filenames for each bundle slot
MAP_FILENAMES = {
    "base_texture": "BaseTexture.png",
    "normal_map": "NormalMap.png",
    "roughness_map": "RoughnessMap.png",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="material-cli",
        description="Generate material textures (base color, normal, roughness) from a prompt",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  material-cli --prompt "mossy cobblestone"
  material-cli --prompt "rusted steel plate" --image ref.jpg
  material-cli --prompt "oak planks" --base-only --backend hosted --base-url https://api.example.com/v1
""",
    )
    parser.add_argument("--prompt", default=None, help="Text prompt describing the material")
    parser.add_argument("--image", default=None, help="Optional reference image file")
    parser.add_argument(
        "--base-only",
        action="store_true",
        help="Generate only the base texture (single 2D image)",
    )
    parser.add_argument(
        "--backend",
        choices=sorted(material_core.BACKENDS),
        default=None,
        help="Generation backend (default: $MATERIAL_BACKEND or local)",
    )
    parser.add_argument("--base-url", default=None, help="Override the backend base URL")
    parser.add_argument(
        "--max-attempts",
        type=int,
        default=None,
        help="Attempts before giving up (default: $MATERIAL_MAX_ATTEMPTS or 3)",
    )
    parser.add_argument(
        "--output-dir",
        default="cli_output",
        help="Directory to save generated textures (default: cli_output)",
    )
    parser.add_argument("--json", action="store_true", help="Print a JSON summary to stdout")
    parser.add_argument("--log-level", default="INFO", help="Console log level (default: INFO)")
    parser.add_argument(
        "--log-file",
        default=None,
        help=f"Rotating debug log file (default: {log_setup.LOG_FILE})",
    )
    return parser


def main(argv: Optional[list] = None) -> int:
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    log_setup.configure(args.log_level, log_file=args.log_file)

    if not args.prompt or not args.prompt.strip():
        parser.error("--prompt is required")

    reference = None
    if args.image:
        reference = Path(args.image)
        if not reference.is_file():
            print(f"✗  Reference image not found: {reference}", file=sys.stderr)
            return 2

    try:
        settings = material_core.load_settings()
    except ValueError as exc:
        print(f"✗  Invalid MATERIAL_* setting: {exc}", file=sys.stderr)
        return 2
    if args.backend:
        settings["backend"] = args.backend
    if args.base_url:
        settings["base_url"] = args.base_url
    if args.max_attempts is not None:
        settings["max_attempts"] = args.max_attempts
    if settings["max_attempts"] < 1:
        print("✗  --max-attempts must be at least 1", file=sys.stderr)
        return 2

    try:
        generator = material_core.MaterialGenerator(settings, progress_cb=_progress)
    except ValueError as exc:
        print(f"✗  {exc}", file=sys.stderr)
        return 2

    prompt = args.prompt.strip()
    mode = "base texture" if args.base_only else "material"
    _echo(f"\n  ✦ Material Generator CLI")
    _echo(f"  Prompt  : {prompt}")
    _echo(f"  Mode    : {mode}{' + reference image' if reference else ''}")
    _echo(f"  Backend : {generator.backend} ({generator.base_url})")
    _echo(f"  Attempts: {settings['max_attempts']}\n")

    if args.base_only:
        operation = functools.partial(generator.generate_base_texture, prompt, reference)
    else:
        operation = functools.partial(generator.generate_material, prompt, reference)

    start = time.time()
    try:
        outcome = asyncio.run(with_retry(operation, settings["max_attempts"]))
    finally:
        generator.close()
    duration = time.time() - start

    if isinstance(outcome, Failure):
        print(f"\n✗  {outcome.message}", file=sys.stderr)
        return 1

    stamp = time.strftime("%Y%m%d_%H%M%S")
    if args.base_only:
        output_dir = Path(args.output_dir)
        saved = {"base_texture": _save(outcome.value, output_dir / f"Texture_{stamp}.png")}
    else:
        output_dir = Path(args.output_dir) / f"Material_{stamp}"
        saved = save_bundle(outcome.value, output_dir)

    _echo(f"\n  ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━")
    _echo(f"  Maps    : {len(saved)} saved")
    _echo(f"  Duration: {duration:.1f}s")
    _echo(f"  Output  : {output_dir}\n")

    if args.json:
        print(json.dumps({"prompt": prompt, "mode": mode, "duration": duration, "files": saved}, indent=2))

    return 0


def save_bundle(bundle: MaterialBundle, output_dir: Path) -> Dict[str, str]:
    """Write every populated map of *bundle* into *output_dir*."""
    saved: Dict[str, str] = {}
    for slot, image in bundle.maps().items():
        if image is None:
            continue
        saved[slot] = _save(image, output_dir / MAP_FILENAMES[slot])
    return saved


def _save(image: DecodedImage, path: Path) -> str:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(image.to_png())
    _echo(f"  ✓ Saved {path}")
    return str(path)


def _progress(event: dict) -> None:
    status = event.get("status", "")
    msg    = event.get("message", "")
    prefix = {
        "started":   "  ◌ ",
        "completed": "  ✓ ",
        "failed":    "  ✗ ",
    }.get(status, "    ")
    _echo(f"{prefix}{msg}")


def _echo(msg: str) -> None:
    print(msg, flush=True)


if __name__ == "__main__":
    raise SystemExit(main())
