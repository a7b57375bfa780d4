#!/usr/bin/env python3
"""Push-to-talk voice chat using your microphone.

Press Enter to start speaking and Enter again to stop. Requires the
``mic`` extra (sounddevice) and a working PortAudio input device.
"""

import asyncio

from talkloop.config import get_settings
from talkloop.logging_config import setup_logging
from talkloop.services.audio.capture import SoundDeviceCapture
from talkloop.services.audio.playback import SoundDevicePlayer
from talkloop.services.exceptions import ServiceError
from talkloop.services.factory import create_orchestrator

SAMPLE_RATE = 16000


async def wait_for_enter(prompt: str) -> str:
    return await asyncio.to_thread(input, prompt)


async def main() -> None:
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_dir, settings.log_to_file)

    print("=" * 60)
    print("talkloop - voice chat")
    print("=" * 60)
    print(
        f"\nSTT: {settings.stt_provider}   LLM: {settings.llm_provider}   "
        f"TTS: {settings.tts_provider}"
    )
    print("Enter: start/stop talking   q + Enter: quit\n")

    orchestrator = create_orchestrator(
        settings,
        capture=SoundDeviceCapture(sample_rate=SAMPLE_RATE),
        sink=SoundDevicePlayer(),
    )

    async with orchestrator:
        while True:
            if (await wait_for_enter("[Enter] to talk: ")).strip().lower() == "q":
                break

            try:
                if not await orchestrator.begin_capture():
                    continue
                await wait_for_enter("Listening... [Enter] to stop ")
                result = await orchestrator.end_capture()
            except ServiceError as e:
                print(f"\nError ({e.stage or 'pipeline'}): {e}\n")
                continue

            if result is None:
                continue
            if result.no_speech:
                print("(no speech detected)\n")
                continue
            print(f"You: {result.transcript}")
            print(f"Bot: {result.reply}\n")

    print("Goodbye!")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print()
