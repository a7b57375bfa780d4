#!/usr/bin/env python3
"""Quick TTS check - listen to the configured voice.

Synthesizes a few phrases with the TTS provider chosen in the
environment and plays them. The second pass over a phrase should be
served from the response cache.
"""

import argparse
import asyncio
import time

from talkloop.config import get_settings
from talkloop.logging_config import setup_logging
from talkloop.services.audio.playback import SoundDevicePlayer
from talkloop.services.exceptions import ServiceError
from talkloop.services.factory import create_tts_service

TEST_PHRASES = [
    "Hello! How can I help you today?",
    "The weather looks clear this afternoon.",
    "你好，很高興見到你。",
    "Hello! How can I help you today?",
]


async def main(provider: str | None) -> None:
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_dir, enable_file=False)

    tts = create_tts_service(settings, provider=provider)
    player = SoundDevicePlayer()

    print("=" * 60)
    print(f"  TTS voice check: {provider or settings.tts_provider}")
    print("=" * 60)
    print("  Press Enter to play each phrase, or 'q' to quit")
    print("-" * 60)

    async with tts:
        for i, phrase in enumerate(TEST_PHRASES, 1):
            print(f"\n[{i}/{len(TEST_PHRASES)}] {phrase}")
            user_input = (await asyncio.to_thread(input, "  Press Enter to play (q to quit): "))
            if user_input.strip().lower() == "q":
                break

            try:
                start = time.perf_counter()
                audio = await tts.synthesize(phrase)
                elapsed_ms = (time.perf_counter() - start) * 1000
                print(
                    f"  {audio.duration_seconds:.1f}s at {audio.sample_rate}Hz "
                    f"in {elapsed_ms:.0f}ms"
                )
                await player.play(audio)
            except ServiceError as e:
                print(f"  Error ({e.stage}): {e}")

        if tts.cache is not None:
            print(f"\n  Cache hit rate: {tts.cache.hit_rate:.0%}")

    print("\n" + "=" * 60)
    print("  Check complete!")
    print("=" * 60)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument(
        "--provider",
        choices=["google", "openai", "elevenlabs", "huggingface"],
        help="Override TALKLOOP_TTS_PROVIDER",
    )
    args = parser.parse_args()
    try:
        asyncio.run(main(args.provider))
    except (KeyboardInterrupt, EOFError):
        print()
