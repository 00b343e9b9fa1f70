"""
Main module for the gpterm terminal client.
"""

from __future__ import annotations

import asyncio
import contextlib
import getpass
import logging
import sys
from collections.abc import Callable
from typing import Any

from gpterm.chat_service import ChatService
from gpterm.config import Configuration
from gpterm.credentials import CredentialResolver
from gpterm.llm.client import LLMClient
from gpterm.llm.exceptions import LLMError
from gpterm.logging_utils import ErrorHandler, log_operation, setup_logging
from gpterm.terminal import SubmissionKind, collect_submission

with contextlib.suppress(ImportError):
    import readline  # noqa: F401  line editing and history for input()

logger = logging.getLogger(__name__)

SIGNUP_PROMPT = (
    "This app requires an OpenAI API key.\n"
    "You can sign up for an OpenAI account for free and get yours using the "
    "below link"
)
SIGNUP_LINK = "https://platform.openai.com/account/api-keys"
ENTER_API_KEY_PROMPT = "Please enter your OpenAI API Key: "

# sysexits.h codes
EXIT_OK = 0
EXIT_USAGE = 64
EXIT_OSFILE = 72
EXIT_INTERRUPTED = 130


def obtain_api_key(
    resolver: CredentialResolver,
    read_secret: Callable[[str], str] = getpass.getpass,
) -> str | None:
    """Resolve the API key, asking for it and saving it when none is stored."""
    api_key = resolver.resolve()
    if api_key:
        return api_key

    print(f"{SIGNUP_PROMPT}\n{SIGNUP_LINK}\n")
    try:
        api_key = read_secret(ENTER_API_KEY_PROMPT).strip()
    except EOFError:
        return None
    if not api_key:
        return None

    try:
        resolver.save(api_key)
    except OSError as e:
        print(f"Failed to save api key to disk: {e}", file=sys.stderr)

    return api_key


@log_operation("chat_session")
async def chat_loop(
    service: ChatService,
    terminal_config: dict[str, Any],
    read_line: Callable[[str], str] = input,
) -> int:
    """
    Alternate between reading a submission and streaming its answer.

    Input is read on the event loop thread. The loop runs no other task, and
    a read parked in a worker thread would keep interpreter shutdown waiting
    for the user after Ctrl-C.
    """
    marker = terminal_config["submit_marker"]
    print(f"Type your message - when finished, type {marker} and press enter")

    while True:
        submission = collect_submission(
            read_line, terminal_config["prompt"], marker
        )

        if submission.kind is SubmissionKind.EXIT:
            return EXIT_OK
        if submission.kind is SubmissionKind.RESET:
            service.reset()
            print("Cleared previous conversation")
            continue
        if not submission.text.strip():
            continue

        try:
            result = await service.submit(submission.text)
        except LLMError as e:
            print(f"\n{ErrorHandler.describe(e)}\n", file=sys.stderr)
            continue

        if result.undecoded_fragment:
            print(
                "\n[warning] the response ended with data that could not be decoded",
                file=sys.stderr,
            )

        # Blank line between answers
        print("\n")


async def main() -> int:
    """Main entry point - interactive terminal chat."""
    config = Configuration()
    setup_logging(config.get_logging_config()["level"])

    try:
        credentials_config = config.get_credentials_config()
    except RuntimeError as e:
        print(f"Could not determine your home directory: {e}", file=sys.stderr)
        return EXIT_OSFILE

    resolver = CredentialResolver(
        env_var=credentials_config["token_env_var"],
        app_folder=credentials_config["app_folder"],
        token_file=credentials_config["token_file"],
    )
    api_key = obtain_api_key(resolver)
    if api_key is None:
        print("Could not read api key. Please try again later")
        return EXIT_USAGE

    llm_config = {
        **config.get_llm_config(),
        "http_client": config.get_http_client_config(),
    }
    streaming_config = config.get_streaming_config()

    async with LLMClient(llm_config, api_key) as llm_client:
        service = ChatService(
            llm_client,
            halt_on_decode_error=streaming_config["halt_on_decode_error"],
        )
        exit_code = await chat_loop(service, config.get_terminal_config())

    logger.info("Application shutdown complete")
    return exit_code


def run() -> None:
    """Console script entry point."""
    try:
        exit_code = asyncio.run(main())
    except KeyboardInterrupt:
        print()
        exit_code = EXIT_INTERRUPTED
    sys.exit(exit_code)


if __name__ == "__main__":
    run()
