#!/usr/bin/env python3
"""Interactive CLI to hold a typed conversation with the configured stack.

Type messages and hear (or just read) the replies. Providers are chosen
through TALKLOOP_* environment variables or a .env file.
"""

import argparse
import asyncio

from talkloop.config import get_settings
from talkloop.core.pipeline import InteractionOrchestrator
from talkloop.logging_config import setup_logging
from talkloop.observability.metrics import get_metrics
from talkloop.services.audio.playback import SoundDevicePlayer
from talkloop.services.exceptions import ServiceError
from talkloop.services.factory import create_orchestrator


def print_history(orchestrator: InteractionOrchestrator) -> None:
    """Print the conversation history."""
    for message in orchestrator.history.snapshot():
        print(f"  [{message.role.value}] {message.content}")


def print_metrics() -> None:
    """Print the talkloop Prometheus series."""
    for line in get_metrics().decode("utf-8").splitlines():
        if line.startswith("talkloop_"):
            print(f"  {line}")


async def main(speak: bool) -> None:
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_dir, settings.log_to_file)

    print("=" * 60)
    print("talkloop - text chat")
    print("=" * 60)
    print(f"\nLLM: {settings.llm_provider}   TTS: {settings.tts_provider if speak else 'off'}")
    print("Commands: /history, /metrics, /reset (forget the conversation), /quit\n")

    orchestrator = create_orchestrator(
        settings,
        sink=SoundDevicePlayer() if speak else None,
        enable_tts=speak,
    )

    async with orchestrator:
        while True:
            user_input = (await asyncio.to_thread(input, "You: ")).strip()
            if not user_input:
                continue

            command = user_input.lower()
            if command == "/quit":
                print("\nGoodbye!")
                break
            if command == "/history":
                print_history(orchestrator)
                continue
            if command == "/metrics":
                print_metrics()
                continue
            if command == "/reset":
                await orchestrator.reset()
                orchestrator.history.clear()
                print("\nConversation cleared.\n")
                continue

            try:
                result = await orchestrator.submit_user_utterance(user_input)
            except ServiceError as e:
                print(f"\nError ({e.stage or 'pipeline'}): {e}\n")
                continue

            if result is None:
                continue
            print(f"\nBot: {result.reply}")
            if result.audio is not None:
                print(f"   ({result.audio.duration_seconds:.1f}s of audio)")
            print()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--no-speak", action="store_true", help="Text replies only")
    args = parser.parse_args()
    try:
        asyncio.run(main(speak=not args.no_speak))
    except (KeyboardInterrupt, EOFError):
        print()
