#!/usr/bin/env python3
"""
Terminal client for the Character Sheet Generator.
Uploads a local avatar to the parallel endpoint and prints every streamed
snapshot, then saves the generated images next to the avatar.

Usage:
    python tester_scripts/terminal_generate.py avatar.png [template.png]
"""

import asyncio
import base64
import json
import mimetypes
import os
import sys
from pathlib import Path

import aiohttp

# Configuration - defaults to port 8080, can be overridden via env
DEFAULT_PORT = os.getenv("GENERATOR_PORT", "8080")
BASE_URL = f"http://localhost:{DEFAULT_PORT}"
PARALLEL_URL = f"{BASE_URL}/api/generate/parallel"
MODELS_URL = f"{BASE_URL}/api/models"
HEALTH_URL = f"{BASE_URL}/health"

# Comma-separated catalog ids, e.g. "gemini-flash,flux"; empty means server defaults
MODEL_IDS = [m.strip() for m in os.getenv("GENERATOR_MODELS", "").split(",") if m.strip()]


# ANSI Colors
class Colors:
    CYAN = "\033[96m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    RED = "\033[91m"
    BOLD = "\033[1m"
    DIM = "\033[2m"
    RESET = "\033[0m"


BADGE_COLORS = {
    "loading": Colors.YELLOW,
    "success": Colors.GREEN,
    "error": Colors.RED,
}


def print_banner():
    """Print welcome banner."""
    print(f"""
{Colors.CYAN}{Colors.BOLD}╔════════════════════════════════════════════════════════════╗
║          Character Sheet Generator - Terminal Client       ║
╚════════════════════════════════════════════════════════════╝{Colors.RESET}
{Colors.DIM}Type a prompt and press Enter to generate.
Commands: /models (list models), /health (check server), /quit (exit){Colors.RESET}
""")


def print_error(message: str):
    """Print error message."""
    print(f"\n{Colors.RED}{Colors.BOLD}Error:{Colors.RESET} {message}")


def print_info(message: str):
    """Print info message."""
    print(f"\n{Colors.YELLOW}{Colors.BOLD}Info:{Colors.RESET} {message}")


def print_snapshot(snapshot: dict):
    """Print one streamed snapshot as a status table."""
    summary = snapshot.get("summary", {})
    print(
        f"\n{Colors.DIM}[{snapshot.get('sequence', 0)}] "
        f"pending={summary.get('pending')} ok={summary.get('succeeded')} "
        f"failed={summary.get('failed')}{Colors.RESET}"
    )
    for row in snapshot.get("results", []):
        color = BADGE_COLORS.get(row.get("badge"), "")
        detail = row.get("durationLabel") or ""
        if row.get("error"):
            detail = f"{detail} {row['error']}".strip()
        print(f"  {color}{row.get('badge', '?'):8}{Colors.RESET} {row.get('label', row.get('selectionId'))} {Colors.DIM}{detail}{Colors.RESET}")
    if summary.get("banner"):
        print_error(summary["banner"])


def encode_file(path: Path) -> tuple[str, str]:
    """Read an image file as (base64, mime type)."""
    mime_type = mimetypes.guess_type(path.name)[0] or "image/png"
    return base64.b64encode(path.read_bytes()).decode("ascii"), mime_type


def save_results(snapshot: dict, avatar: Path):
    """Write successful images beside the avatar."""
    for row in snapshot.get("results", []):
        if not row.get("imageData"):
            continue
        extension = (row.get("mimeType") or "image/png").split("/")[-1]
        safe_id = row["selectionId"].replace("/", "_").replace(":", "_").replace("#", "_")
        target = avatar.with_name(f"{avatar.stem}_{safe_id}.{extension}")
        target.write_bytes(base64.b64decode(row["imageData"]))
        print_info(f"Saved {target}")


async def check_health(session: aiohttp.ClientSession) -> bool:
    """Check if the backend is healthy."""
    try:
        async with session.get(HEALTH_URL, timeout=aiohttp.ClientTimeout(total=5)) as response:
            data = await response.json()
            print_info(f"Server Status: {data.get('status', 'unknown')}")
            for name, info in data.get("services", {}).get("providers", {}).items():
                print(f"  {Colors.DIM}• {name}: {'✓' if info.get('configured') else '✗'}{Colors.RESET}")
            return response.status == 200
    except aiohttp.ClientConnectorError:
        print_error(f"Cannot connect to server. Is it running on {BASE_URL}?")
        return False
    except Exception as e:
        print_error(f"Health check failed: {e}")
        return False


async def list_models(session: aiohttp.ClientSession):
    """Print the model catalog."""
    async with session.get(MODELS_URL) as response:
        data = await response.json()
    for model in data.get("models", []):
        flag = "✓" if model.get("configured") else "✗"
        print(f"  {flag} {model['id']:14} {model['label']} {Colors.DIM}({model['provider']} / {model['model']}){Colors.RESET}")


async def generate(session: aiohttp.ClientSession, prompt: str, avatar: Path, template: Path | None):
    """Post a parallel generation and print snapshots as they stream in."""
    image_b64, mime_type = encode_file(avatar)
    payload = {
        "promptText": prompt,
        "primaryImageBase64": image_b64,
        "primaryMimeType": mime_type,
    }
    if template is not None:
        template_b64, template_mime = encode_file(template)
        payload["templateImageBase64"] = template_b64
        payload["templateMimeType"] = template_mime
    if MODEL_IDS:
        async with session.get(MODELS_URL) as response:
            catalog = {m["id"]: m for m in (await response.json()).get("models", [])}
        payload["selections"] = [
            {"providerId": catalog[i]["provider"], "modelId": catalog[i]["model"], "selectionId": i}
            for i in MODEL_IDS
            if i in catalog
        ]

    final = None
    try:
        async with session.post(PARALLEL_URL, json=payload) as response:
            if response.status != 200:
                error_text = await response.text()
                print_error(f"Server error ({response.status}): {error_text}")
                return

            async for line in response.content:
                if not line.strip():
                    continue
                final = json.loads(line)
                print_snapshot(final)
    except aiohttp.ClientConnectorError:
        print_error(f"Cannot connect to server. Is it running on {BASE_URL}?")
        return
    except asyncio.TimeoutError:
        print_error("Request timed out")
        return

    if final is not None:
        save_results(final, avatar)


async def main():
    """Main prompt loop."""
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)

    avatar = Path(sys.argv[1])
    template = Path(sys.argv[2]) if len(sys.argv) > 2 else None
    for path in filter(None, (avatar, template)):
        if not path.is_file():
            print_error(f"File not found: {path}")
            sys.exit(1)

    print_banner()

    timeout = aiohttp.ClientTimeout(total=300)
    async with aiohttp.ClientSession(timeout=timeout) as session:
        print_info("Checking server connection...")
        await check_health(session)
        print(f"\n{Colors.DIM}{'─' * 60}{Colors.RESET}")

        while True:
            try:
                user_input = input(f"\n{Colors.GREEN}{Colors.BOLD}Prompt:{Colors.RESET} ").strip()
            except (KeyboardInterrupt, EOFError):
                print_info("\nGoodbye!")
                break

            if not user_input:
                continue
            if user_input.lower() == "/quit":
                print_info("Goodbye!")
                break
            if user_input.lower() == "/health":
                await check_health(session)
                continue
            if user_input.lower() == "/models":
                await list_models(session)
                continue

            await generate(session, user_input, avatar, template)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\nExiting...")
        sys.exit(0)
