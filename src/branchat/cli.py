"""CLI entry point for branchat."""

import argparse
import dataclasses
import logging
import sys

import branchat.io.logging_setup
import branchat.io.settings
from branchat.app.controller import DEFAULT_STOP_GRACE
from branchat.app.responders import EchoResponder
from branchat.app.service import InMemoryConversationService
from branchat.core.errors import ChatError
from branchat.io.openai_client import OpenAIResponder, list_models
from branchat.io.settings import ApiSettings

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="branchat",
        description="Branching chat client for OpenAI-compatible endpoints",
    )
    parser.add_argument("--base-url", type=str, default=None, help="API base URL (e.g. https://api.openai.com/v1/)")
    parser.add_argument("--api-key", type=str, default=None, help="API key (default: settings file or BRANCHAT_API_KEY)")
    parser.add_argument("--model", type=str, default=None, help="Model id")
    parser.add_argument("--system-prompt", type=str, default=None, help="System prompt for new conversations")
    parser.add_argument(
        "--offline",
        action="store_true",
        help="Do not call any endpoint; replies echo your message",
    )
    parser.add_argument(
        "--save-settings",
        action="store_true",
        help="Persist the given --base-url/--api-key/--model/--system-prompt to the settings file",
    )
    parser.add_argument(
        "--list-models",
        action="store_true",
        help="Print the models the endpoint offers and exit",
    )
    parser.add_argument(
        "--stop-grace",
        type=float,
        default=DEFAULT_STOP_GRACE,
        help=f"Seconds to absorb late deltas after stopping (default: {DEFAULT_STOP_GRACE})",
    )
    return parser


def resolve_settings(args: argparse.Namespace, base: ApiSettings) -> ApiSettings:
    """Command-line values override the loaded settings."""
    overrides = {
        "base_url": args.base_url,
        "api_key": args.api_key,
        "model": args.model,
        "system_prompt": args.system_prompt,
    }
    return dataclasses.replace(base, **{k: v for k, v in overrides.items() if v is not None})


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    # [LAW:single-enforcer] Logger configuration is centralized in io.logging_setup.
    # The TUI owns the terminal, so stderr logging only for one-shot commands.
    log_runtime = branchat.io.logging_setup.configure(to_stderr=args.list_models)
    logger.info("branchat starting log_file=%s", log_runtime.file_path)

    settings = resolve_settings(args, branchat.io.settings.load_api_settings())
    if args.save_settings:
        branchat.io.settings.save_api_settings(settings)
        print(f"Settings saved to {branchat.io.settings.get_config_path()}")

    if args.list_models:
        try:
            models = list_models(settings)
        except ChatError as e:
            print(f"error: {e}", file=sys.stderr)
            return 1
        for model in models:
            print(model)
        return 0

    if args.offline:
        responder = EchoResponder()
    else:
        if not settings.is_configured:
            print(
                "error: no API key configured (use --api-key, BRANCHAT_API_KEY, or --offline)",
                file=sys.stderr,
            )
            return 2
        responder = OpenAIResponder()

    service = InMemoryConversationService(responder, settings)

    # Textual is imported late so one-shot commands stay fast.
    from branchat.tui.app import ChatApp

    ChatApp(service, stop_grace=args.stop_grace).run()
    logger.info("branchat exited")
    return 0


if __name__ == "__main__":
    sys.exit(main())
