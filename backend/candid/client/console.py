import argparse
import asyncio
import logging

from candid.client.interview_client import DEFAULT_URL, InterviewClient

logger = logging.getLogger(__name__)


class ConsoleRecognizer:
    """Typed lines stand in for recognized speech"""

    def __init__(self):
        self.active = False

    def start(self) -> None:
        self.active = True
        print("🎤 Your turn - type your answer (/code, /retry, /quit)")

    def stop(self) -> None:
        self.active = False


class SilentPlayer:
    """Pretends to play each clip for a moment instead of producing sound"""

    def __init__(self, clip_seconds: float = 0.5):
        self.clip_seconds = clip_seconds
        self.is_speaking = False

    async def play(self, audio: bytes, audio_format: str) -> None:
        self.is_speaking = True
        try:
            await asyncio.sleep(self.clip_seconds)
        finally:
            self.is_speaking = False

    def stop(self) -> None:
        self.is_speaking = False


def print_event(event: dict) -> None:
    event_type = event.get("type")
    if event_type == "assistantText":
        print(f"🤖 Interviewer: {event.get('text')}")
    elif event_type == "userText":
        print(f"🗣️ You: {event.get('text')}")
    elif event_type == "error":
        print(f"❌ {event.get('message')}")
    elif event_type == "timeUp":
        print("⏰ Time is up")
    elif event_type == "stopped":
        print("🛑 Interview ended")


async def read_input(client: InterviewClient) -> None:
    while not client.closed:
        line = await asyncio.to_thread(input)
        line = line.strip()
        if line == "/quit":
            break
        if line == "/code":
            await client.code_activity()
        elif line == "/retry":
            await client.retry()
        elif line:
            client.on_speech(line)


async def run_console(url: str, duration_minutes=None, pause_ms=None) -> None:
    client = InterviewClient(
        ConsoleRecognizer(),
        SilentPlayer(),
        url=url,
        pause_ms=pause_ms,
        on_message=print_event,
    )
    await client.start(duration_minutes)
    receiver = asyncio.create_task(client.run())
    try:
        await read_input(client)
    finally:
        await client.close()
        receiver.cancel()
        try:
            await receiver
        except asyncio.CancelledError:
            pass


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Run a mock coding interview from the terminal")
    parser.add_argument("--url", default=DEFAULT_URL, help="interview websocket URL")
    parser.add_argument("--duration", type=float, default=None, help="interview length in minutes")
    parser.add_argument("--pause-ms", type=int, default=None, help="silence that ends an answer")
    parser.add_argument("--log-level", default="WARNING")
    args = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, args.log_level.upper(), logging.WARNING))
    try:
        asyncio.run(run_console(args.url, args.duration, args.pause_ms))
    except (KeyboardInterrupt, EOFError):
        print("\n👋 Goodbye")


if __name__ == "__main__":
    main()
