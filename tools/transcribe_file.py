"""
Stream an audio file through /stt as if it were the microphone.

Reads any format soundfile supports, downmixes to mono, resamples to 16 kHz
in capture-sized blocks and prints the transcripts.

    python tools/transcribe_file.py hello.wav --language zh-TW
"""

from __future__ import annotations

import argparse
import asyncio
import sys

import numpy as np
import soundfile as sf

from audio.pcm import float_to_pcm16, resample_to_16k
from constants import CAPTURE_BLOCK_SAMPLES, STT_DEFAULT_LANGUAGE
from errors import AppError
from stt.client import SttClient


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    p.add_argument("path")
    p.add_argument("--url", default="ws://localhost:8000/stt")
    p.add_argument("--language", default=STT_DEFAULT_LANGUAGE)
    p.add_argument("--api-key", default=None)
    p.add_argument("--speed", type=float, default=1.0, help="playback speed (0 = as fast as possible)")
    p.add_argument("--tail", type=float, default=3.0, help="seconds to wait for final results")
    return p.parse_args(argv)


async def run(args: argparse.Namespace) -> int:
    audio, rate = sf.read(args.path, dtype="float32", always_2d=True)
    mono = audio.mean(axis=1).astype(np.float32)
    print(f"{args.path}: {len(mono) / rate:.2f}s @ {rate} Hz")

    try:
        session = await SttClient(args.url, api_key=args.api_key).start_session(language=args.language)
    except AppError as e:
        print(f"STT session failed: {e}", file=sys.stderr)
        return 1

    finals: list[str] = []
    session.on_recognizing(lambda data: print(f"... {data['text']}"))
    session.on_result(lambda data: finals.append(str(data["text"])))
    session.on_error(lambda message: print(f"STT error: {message}", file=sys.stderr))

    block_s = CAPTURE_BLOCK_SAMPLES / rate
    for start in range(0, len(mono), CAPTURE_BLOCK_SAMPLES):
        pcm = float_to_pcm16(resample_to_16k(mono[start:start + CAPTURE_BLOCK_SAMPLES], rate))
        if pcm:
            session.send_audio(pcm)
        if args.speed > 0:
            await asyncio.sleep(block_s / args.speed)

    await asyncio.sleep(args.tail)
    await session.stop()

    for text in finals:
        print(f">>> {text}")
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(run(parse_args())))
