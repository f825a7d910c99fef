"""
Live microphone -> /stt bridge.

Captures the default input device, streams PCM16 to the server's /stt
endpoint and prints partial and final transcripts. With --avatar-session,
every final transcript is also sent to that avatar session to speak.

    python tools/mic_to_stt.py --url ws://localhost:8000/stt --language zh-TW
"""

from __future__ import annotations

import argparse
import asyncio
import sys

import httpx
import sounddevice as sd

from audio.capture import MicrophonePipeline
from constants import STT_DEFAULT_LANGUAGE
from errors import AppError, AudioCaptureError
from stt.client import SttClient


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    p.add_argument("--url", default="ws://localhost:8000/stt", help="STT WebSocket URL")
    p.add_argument("--language", default=STT_DEFAULT_LANGUAGE)
    p.add_argument("--api-key", default=None, help="apiKey sent with start-stt")
    p.add_argument("--device", default=None, help="input device index or name")
    p.add_argument("--seconds", type=float, default=0.0, help="stop after N seconds (0 = until Ctrl-C)")
    p.add_argument("--server", default="http://localhost:8000", help="HTTP base URL for --avatar-session")
    p.add_argument("--avatar-session", default=None, help="avatar session id to speak final transcripts")
    return p.parse_args(argv)


async def run(args: argparse.Namespace) -> int:
    try:
        session = await SttClient(args.url, api_key=args.api_key).start_session(language=args.language)
    except AppError as e:
        print(f"STT session failed: {e}", file=sys.stderr)
        return 1

    finals: asyncio.Queue[str] = asyncio.Queue()
    session.on_recognizing(lambda data: print(f"\r... {data['text']}", end="", flush=True))
    session.on_result(lambda data: finals.put_nowait(str(data["text"])))
    session.on_error(lambda message: print(f"\nSTT error: {message}", file=sys.stderr))

    device = int(args.device) if args.device and args.device.isdigit() else args.device
    pipeline = MicrophonePipeline(device_api=sd, session_provider=lambda: session, device=device)

    try:
        pipeline.start()
    except AudioCaptureError as e:
        print(f"Microphone unavailable ({type(e).__name__}): {e}", file=sys.stderr)
        await session.stop()
        return 2

    print(f"Listening ({args.language}), session {session.session_id}. Ctrl-C to stop.")

    async def _forward(http: httpx.AsyncClient) -> None:
        while True:
            text = await finals.get()
            print(f"\r>>> {text}")
            if args.avatar_session and text.strip():
                resp = await http.post(f"/session/{args.avatar_session}/speak", json={"text": text})
                if resp.is_error:
                    print(f"speak failed: {resp.text}", file=sys.stderr)

    async with httpx.AsyncClient(base_url=args.server) as http:
        forwarder = asyncio.create_task(_forward(http))
        try:
            if args.seconds > 0:
                await asyncio.sleep(args.seconds)
            else:
                await asyncio.Event().wait()
        finally:
            pipeline.stop()
            await session.stop()
            forwarder.cancel()
            await asyncio.gather(forwarder, return_exceptions=True)

    return 0


def main(argv: list[str] | None = None) -> int:
    try:
        return asyncio.run(run(parse_args(argv)))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
