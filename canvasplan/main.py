"""Entry point for the canvasplan chat REPL."""
from __future__ import annotations

import logging
import sys
from pathlib import Path

USAGE = """Usage: python -m canvasplan.main [--message <text>] [--select <id,id>] [--registry <path>]

Commands inside the chat:
  /select id1,id2   set the canvas images in the selection (empty clears it)
  /fix fix-1        apply a suggested auto-fix to the previewed plan
  /reset            start a new conversation
  /quit             exit"""


def _setup_logging() -> None:
    log_dir = Path.home() / ".canvasplan"
    log_dir.mkdir(parents=True, exist_ok=True)
    logging.basicConfig(
        filename=str(log_dir / "canvasplan.log"),
        level=logging.DEBUG,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _option(args: list[str], name: str) -> str | None:
    if name not in args:
        return None
    idx = args.index(name)
    if idx + 1 >= len(args):
        print(USAGE)
        sys.exit(1)
    return args[idx + 1]


def _parse_selection(text: str) -> list[str]:
    return [part.strip() for part in text.split(",") if part.strip()]


def run_chat(first_message: str | None = None, selection: list[str] | None = None,
             registry_path: str | None = None) -> None:
    """Chat on stdin/stdout; approved plans are written to the runs outbox."""
    from schemas import CanvasContext
    from utils import PlanOutbox

    from .config import Config
    from .llm import build_completion_fn
    from .registry import CapabilityRegistry, RegistryError
    from .session import SessionOrchestrator

    config = Config.load()
    try:
        path = registry_path or config.registry_path
        registry = CapabilityRegistry.from_file(Path(path)) if path else CapabilityRegistry.default()
    except RegistryError as e:
        print(f"Error: {e}")
        sys.exit(1)

    if config.resolved_provider() == "offline":
        print("No GEMINI_API_KEY or HF_TOKEN found, running with offline fallbacks.")

    orchestrator = SessionOrchestrator(build_completion_fn(config), registry)
    outbox = PlanOutbox(str(config.runs_dir))
    context = CanvasContext(selected_image_ids=selection or [])
    session = orchestrator.new_session(context)

    def handle(text: str) -> None:
        nonlocal session
        if text.startswith("/fix"):
            result = orchestrator.apply_fix(session, text[len("/fix"):].strip())
        else:
            result = orchestrator.handle_message(session, text, context)
        session = result.session
        print(f"\n{result.reply}\n")
        if result.plan_to_execute is not None:
            path = outbox.write(result.plan_to_execute, session.session_id)
            print(f"Plan written to {path}\n")

    if first_message:
        handle(first_message)

    while True:
        try:
            text = input("you> ").strip()
        except (EOFError, KeyboardInterrupt):
            print()
            return
        if not text:
            continue
        if text in ("/quit", "/exit"):
            return
        if text == "/reset":
            session = orchestrator.new_session(context)
            print("\nStarted a new conversation.\n")
            continue
        if text.startswith("/select"):
            context = CanvasContext(selected_image_ids=_parse_selection(text[len("/select"):]))
            print(f"\nSelected: {', '.join(context.selected_image_ids) or 'nothing'}\n")
            continue
        handle(text)


def main() -> None:
    """Launch the planner chat."""
    _setup_logging()

    args = sys.argv[1:]
    if "--help" in args or "-h" in args:
        print(USAGE)
        return

    message = _option(args, "--message")
    selection = _option(args, "--select")
    registry = _option(args, "--registry")
    run_chat(message, _parse_selection(selection) if selection else None, registry)


if __name__ == "__main__":
    main()
