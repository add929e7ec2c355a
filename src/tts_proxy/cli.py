"""
Command-Line Interface for tts-proxy.

Synthesize text straight through the speech backend without running the
HTTP server. Uses the same SpeechService as the /v1/audio/speech routes.

Usage Examples:
    # Single text synthesis
    tts-proxy --text "Hello. World!" --out hello.mp3

    # Positional text (same as above)
    tts-proxy "Hello. World!" --out hello.mp3

    # Batch processing from file (1 line = 1 item)
    tts-proxy --file inputs.txt --out output_dir/

    # Dry-run mode (clean and chunk only, no network)
    tts-proxy --text "Test" --dry-run --json

    # Voice and prosody overrides
    tts-proxy --text "Test" --voice nova --speed 1.25 --pitch 0.9

    # Write audio batch by batch as it arrives
    tts-proxy --file book.txt --stream --concurrency 4

Environment Variables:
    TTS_PROXY_SETTINGS: Path to settings.yaml
    TTS_PROXY_CONCURRENCY / TTS_PROXY_CHUNK_SIZE: Batching overrides
    TTS_PROXY_LOG_LEVEL: 1-4 or MINIMAL/NORMAL/VERBOSE/DEBUG
"""

from __future__ import annotations

import argparse
import asyncio
import json
from pathlib import Path
from typing import List, Optional
from uuid import uuid4

from tts_proxy.api.dependencies import get_settings
from tts_proxy.core.config import Defaults, ProxyConfig
from tts_proxy.core.errors import TTSError
from tts_proxy.core.logging import configure_logging, fail, get_logger, info, set_request_id
from tts_proxy.services.speech_service import SpeechRequest, SpeechService
from tts_proxy.tts.chunker import chunk_text
from tts_proxy.tts.scheduler import effective_concurrency
from tts_proxy.utils.text import CleaningOptions, clean_text

_EXTENSIONS = {"mp3": "mp3", "opus": "ogg", "pcm": "pcm"}


def _parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="tts-proxy CLI (serverless synth)")

    parser.add_argument("text_pos", nargs="?", help="Text to synthesize (positional)")
    parser.add_argument("--text", help="Text to synthesize")
    parser.add_argument("--file", help="Batch input file (1 line = 1 item)")

    parser.add_argument("--out", help="Output path (file or dir in batch mode)")
    parser.add_argument("--format", default="mp3", choices=sorted(_EXTENSIONS),
                        help="Audio format")

    parser.add_argument("--voice", help="OpenAI or backend voice name")
    parser.add_argument("--model", default=Defaults.DEFAULT_MODEL, help="Model name")
    parser.add_argument("--speed", type=float, default=1.0, help="Speed multiplier (0.25-4.0)")
    parser.add_argument("--pitch", type=float, default=1.0, help="Pitch multiplier (0.5-1.5)")
    parser.add_argument("--style", default=Defaults.DEFAULT_STYLE, help="Speaking style")
    parser.add_argument("--chunk-size", type=int, help="Max characters per unit")
    parser.add_argument("--concurrency", type=int, help="Units synthesized in parallel")

    parser.add_argument("--stream", action="store_true",
                        help="Write audio batch by batch as it arrives")
    parser.add_argument("--dry-run", action="store_true",
                        help="Clean and chunk without synth")
    parser.add_argument("--json", action="store_true",
                        help="Print JSON summary")

    return parser.parse_args(argv)


def _load_texts(args: argparse.Namespace) -> List[str]:
    """
    Load input texts from arguments or file.

    Raises:
        SystemExit: If no input provided or conflicting options used.
    """
    text = args.text or args.text_pos

    if args.file:
        if text:
            raise SystemExit("Use --file without --text or positional text.")
        lines = Path(args.file).read_text(encoding="utf-8").splitlines()
        items = [line.strip() for line in lines if line.strip()]
        if not items:
            raise SystemExit("Input file is empty.")
        return items

    if not text:
        raise SystemExit("Provide --text or a positional text.")
    return [text]


def _resolve_output_paths(args: argparse.Namespace, count: int) -> List[Path]:
    ext = _EXTENSIONS[args.format]
    if args.file:
        out_dir = Path(args.out or "out")
        out_dir.mkdir(parents=True, exist_ok=True)
        return [out_dir / f"item_{i + 1:03d}.{ext}" for i in range(count)]

    out_path = Path(args.out or f"out.{ext}")
    out_path.parent.mkdir(parents=True, exist_ok=True)
    return [out_path]


def _summary_for_text(text: str, config: ProxyConfig, args: argparse.Namespace) -> dict:
    """Clean and chunk ``text`` the way a real request would, without synthesis."""
    options = CleaningOptions.from_mapping(vars(config.cleaning))
    cleaned = clean_text(text, options)
    chunk_size = args.chunk_size or config.chunking.chunk_size
    cr = chunk_text(cleaned, chunk_size)
    requested = args.concurrency or config.batching.concurrency
    return {
        "text_len": len(text),
        "clean_len": len(cleaned),
        "units": len(cr),
        "unit_lengths": [len(u.content) for u in cr.units],
        "concurrency": effective_concurrency(requested, len(cr)),
    }


def _request_for(text: str, args: argparse.Namespace) -> SpeechRequest:
    return SpeechRequest(
        input=text,
        model=args.model,
        voice=args.voice,
        speed=args.speed,
        pitch=args.pitch,
        style=args.style,
        stream=args.stream,
        concurrency=args.concurrency,
        chunk_size=args.chunk_size,
        response_format=args.format,
    )


async def _synthesize_one(service: SpeechService, req: SpeechRequest, out_path: Path) -> dict:
    if req.stream:
        speech = await service.stream(req)
        written = 0
        with out_path.open("wb") as fh:
            async for chunk in speech:
                fh.write(chunk)
                fh.flush()
                written += len(chunk)
        return {"out": str(out_path), "bytes": written, "units": speech.units, "voice": speech.voice}

    result = await service.synthesize(req)
    out_path.write_bytes(result.audio)
    return {"out": str(out_path), "bytes": len(result.audio), "units": result.units, "voice": result.voice}


async def _synthesize_all(service: SpeechService, requests: List[SpeechRequest], out_paths: List[Path]) -> List[dict]:
    results = []
    for req, out_path in zip(requests, out_paths):
        results.append(await _synthesize_one(service, req, out_path))
    return results


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Returns:
        Exit code (0 for success, 1 on a synthesis or validation error).
    """
    args = _parse_args(argv)

    configure_logging()
    log = get_logger("tts-proxy.cli")
    set_request_id(str(uuid4())[:12])

    settings = get_settings()
    config = ProxyConfig.from_settings(settings)

    texts = _load_texts(args)

    if args.dry_run:
        summaries = [_summary_for_text(t, config, args) for t in texts]
        payload = {"ok": True, "dry_run": True, "items": summaries}

        if args.json:
            print(json.dumps(payload, ensure_ascii=False))
        else:
            info(log, "dry_run", items=len(texts), units=sum(s["units"] for s in summaries))
            print(payload)
        print("DRY_RUN_OK")
        return 0

    out_paths = _resolve_output_paths(args, len(texts))
    service = SpeechService(settings)
    requests = [_request_for(t, args) for t in texts]

    try:
        results = asyncio.run(_synthesize_all(service, requests, out_paths))
    except TTSError as e:
        fail(log, "cli_failed", error=e.message, code=e.code)
        payload = {"ok": False, "error": e.to_dict()["error"]}
        print(json.dumps(payload, ensure_ascii=False) if args.json else payload)
        return 1

    payload = {"ok": True, "dry_run": False, "items": results}
    if args.json:
        print(json.dumps(payload, ensure_ascii=False))
    else:
        print(payload)
    print("CLI_OK")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
