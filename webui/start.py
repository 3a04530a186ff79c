"""
canvasplan API launcher.

Usage:
  python webui/start.py                       # Serve the chat API on :8000
  python webui/start.py --dev                 # Auto-reload on code changes
  python webui/start.py --host 127.0.0.1 --port 9000
"""
from __future__ import annotations

import sys
from pathlib import Path

import uvicorn

REPO_ROOT = Path(__file__).parent.parent
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 8000


def _flag_value(args: list[str], name: str, default: str) -> str:
    if name in args and args.index(name) + 1 < len(args):
        return args[args.index(name) + 1]
    return default


def main() -> None:
    args = sys.argv[1:]
    dev = "--dev" in args
    host = _flag_value(args, "--host", DEFAULT_HOST)
    port = int(_flag_value(args, "--port", str(DEFAULT_PORT)))

    print(f"canvasplan API on http://{host}:{port}  (sessions: /api/sessions, models: /api/models)")
    uvicorn.run(
        "webui.backend.app:app",
        host=host,
        port=port,
        reload=dev,
        reload_dirs=[str(REPO_ROOT)] if dev else None,
        app_dir=str(REPO_ROOT),
    )


if __name__ == "__main__":
    main()
