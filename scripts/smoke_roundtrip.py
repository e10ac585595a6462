#!/usr/bin/env python3
"""Smoke test against the system libvpx.

Encodes a short synthetic clip, decodes it back and checks frame count,
payload pairing and reconstruction quality for VP8 and VP9.

Usage:
    python scripts/smoke_roundtrip.py [--frames N] [--size WxH]

Exit codes:
    0: All checks passed
    1: Some checks failed
"""

from __future__ import annotations

import argparse
import logging
import sys
from fractions import Fraction
from pathlib import Path

import numpy as np

# Add src to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from vpxcodec import Codec, Decoder, EncoderConfig, Frame, FramePacket, TimeInfo, VpxError  # noqa: E402
from vpxcodec.adapter.libvpx import check_available, version_string  # noqa: E402
from vpxcodec.metrics.psnr import compute_psnr  # noqa: E402

# Minimum luma PSNR (dB) expected from a default-quality round trip
MIN_LUMA_PSNR = 25.0


def make_frame(index: int, width: int, height: int) -> Frame:
    """Moving gradient test pattern."""
    frame = Frame.new_default(width, height, time=TimeInfo(pts=index))
    ys, xs = np.mgrid[0:height, 0:width]
    frame.plane(0)[:] = ((xs + ys + index * 4) % 256).astype(np.uint8)
    frame.plane(1)[:] = 128
    frame.plane(2)[:] = 128
    return frame


def check_library() -> bool:
    """Check that libvpx loads and reports a version."""
    try:
        print(f"OK: libvpx {version_string()}")
    except RuntimeError as e:
        print(f"FAIL: {e}")
        return False
    return True


def check_roundtrip(codec: Codec, frames: int, width: int, height: int) -> bool:
    """Encode then decode `frames` frames and compare."""
    if not check_available(codec):
        print(f"FAIL: {codec.value} contexts cannot be created")
        return False

    source = [make_frame(i, width, height) for i in range(frames)]

    config = EncoderConfig(codec)
    config.width = width
    config.height = height
    config.timebase = Fraction(1, 30)

    packets: list[FramePacket] = []
    try:
        with config.get_encoder() as encoder:
            for frame in source:
                encoder.encode(frame)
                packets.extend(p for p in encoder.iter_packets() if isinstance(p, FramePacket))
            encoder.flush()
            packets.extend(p for p in encoder.iter_packets() if isinstance(p, FramePacket))

        decoded = []
        with Decoder(codec) as decoder:
            for packet in packets:
                decoder.decode(packet.data, payload=packet.pts)
                decoded.extend(decoder.iter_frames())
            decoder.flush()
            decoded.extend(decoder.iter_frames())
    except VpxError as e:
        print(f"FAIL: {codec.value}: {e}")
        return False

    print(f"OK: {codec.value}: {len(packets)} packets, {sum(len(p.data) for p in packets)} bytes")

    if len(decoded) != frames:
        print(f"FAIL: {codec.value}: decoded {len(decoded)} of {frames} frames")
        return False

    all_ok = True
    for frame, pts in decoded:
        if pts is None or not 0 <= pts < frames:
            print(f"FAIL: {codec.value}: frame came back with payload {pts!r}")
            all_ok = False
            continue
        psnr = compute_psnr(source[pts], frame)
        if psnr.psnr[1] < MIN_LUMA_PSNR:
            print(f"FAIL: {codec.value}: frame {pts} luma PSNR {psnr.psnr[1]:.1f} dB")
            all_ok = False

    if all_ok:
        print(f"OK: {codec.value}: {frames} frames round-tripped with matching payloads")
    return all_ok


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--frames", type=int, default=10)
    parser.add_argument("--size", default="320x240")
    args = parser.parse_args()
    width, height = (int(v) for v in args.size.split("x"))

    logging.basicConfig(level=logging.WARNING)

    print("=" * 60)
    print("vpxcodec Round-trip Smoke Test")
    print("=" * 60)

    checks_passed = 0
    checks_failed = 0

    print("\n[1/3] Checking library...")
    if not check_library():
        checks_failed += 1
        print("\n" + "=" * 60)
        print(f"RESULT: {checks_passed} passed, {checks_failed} failed")
        return 1
    checks_passed += 1

    for step, codec in enumerate((Codec.VP8, Codec.VP9), start=2):
        print(f"\n[{step}/3] Round-tripping {codec.value}...")
        if check_roundtrip(codec, args.frames, width, height):
            checks_passed += 1
        else:
            checks_failed += 1

    print("\n" + "=" * 60)
    print(f"RESULT: {checks_passed} passed, {checks_failed} failed")
    return 0 if checks_failed == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
