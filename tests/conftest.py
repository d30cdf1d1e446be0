import json
import os
import sys
import time
from pathlib import Path
from types import SimpleNamespace

import pytest


def set_mtime(path: Path, ts: float) -> None:
    os.utime(path, (ts, ts))


@pytest.fixture
def fruit(tmp_path):
    """Album "Fruit" with two rendered tracks, written an hour in the past."""
    src = tmp_path / "rendered"
    src.mkdir()
    out = tmp_path / "out"
    for name in ("apple_v2", "pear_final"):
        (src / f"{name}.wav").write_bytes(b"RIFF")

    doc = {
        "ffmpeg_path": "ffmpeg",
        "input_path": str(src),
        "output_path": str(out),
        "output_extensions": ["mp3", "flac"],
        "Albums": [
            {
                "Title": "Fruit",
                "Artist": "The Orchard",
                "Composer": "A. Grower",
                "Genre": "Ambient",
                "Date": "2024",
                "Copyright": "(c) 2024 The Orchard",
                "Tracks": [
                    {"rendered_file": "apple_v2", "Title": "Apple"},
                    {"rendered_file": "pear_final", "Title": "Pear", "Artist": "Guest"},
                ],
            }
        ],
    }
    meta = tmp_path / "fruit.json"
    meta.write_text(json.dumps(doc), encoding="utf-8")

    past = time.time() - 3600
    for p in (meta, src / "apple_v2.wav", src / "pear_final.wav"):
        set_mtime(p, past)

    return SimpleNamespace(root=tmp_path, src=src, out=out, meta=meta, doc=doc)


@pytest.fixture
def fake_ffmpeg(tmp_path):
    """Executable that writes a few bytes to its last argument, like a successful encode."""
    script = tmp_path / "fake-ffmpeg"
    script.write_text(
        f"#!{sys.executable}\n"
        "import pathlib, sys\n"
        "pathlib.Path(sys.argv[-1]).write_bytes(b'encoded')\n",
        encoding="utf-8",
    )
    script.chmod(0o755)
    return script
