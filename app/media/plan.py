"""Concatenation plans for the interview reel.

Everything here is pure: the plan is computed from already-probed inputs and
turned into an ffmpeg argument list without touching the filesystem.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterator, List, Optional, Sequence, Tuple


class EntryKind(str, Enum):
    CLIP = "clip"
    FILLER = "filler"


@dataclass(frozen=True)
class StreamInfo:
    has_video: bool
    has_audio: bool
    duration: Optional[float] = None

    @property
    def empty(self) -> bool:
        return not (self.has_video or self.has_audio)


@dataclass(frozen=True)
class MediaInput:
    path: Path
    streams: StreamInfo


@dataclass(frozen=True)
class ConcatEntry:
    kind: EntryKind
    path: Path
    streams: StreamInfo
    clip_index: Optional[int] = None

    @property
    def needs_silent_audio(self) -> bool:
        return self.streams.has_video and not self.streams.has_audio

    @property
    def needs_blank_video(self) -> bool:
        return self.streams.has_audio and not self.streams.has_video


@dataclass(frozen=True)
class ConcatPlan:
    entries: Tuple[ConcatEntry, ...]
    skipped: Tuple[Path, ...] = ()

    def __iter__(self) -> Iterator[ConcatEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    @property
    def clips(self) -> List[ConcatEntry]:
        return [entry for entry in self.entries if entry.kind is EntryKind.CLIP]

    @property
    def fillers(self) -> List[ConcatEntry]:
        return [entry for entry in self.entries if entry.kind is EntryKind.FILLER]


def build_concat_plan(clips: Sequence[MediaInput], filler: Optional[MediaInput]) -> ConcatPlan:
    """Interleave ``filler`` between the usable clips, keeping the caller's order.

    Inputs with neither a video nor an audio stream are dropped (and listed in
    ``skipped``) before interleaving, so a filler never ends up next to another
    filler or after the last clip.
    """
    skipped: List[Path] = []
    usable: List[Tuple[int, MediaInput]] = []
    for index, clip in enumerate(clips):
        if clip.streams.empty:
            skipped.append(clip.path)
            continue
        usable.append((index, clip))
    if filler is not None and filler.streams.empty:
        skipped.append(filler.path)
        filler = None

    entries: List[ConcatEntry] = []
    for position, (index, clip) in enumerate(usable):
        if position > 0 and filler is not None:
            entries.append(ConcatEntry(kind=EntryKind.FILLER, path=filler.path, streams=filler.streams))
        entries.append(ConcatEntry(kind=EntryKind.CLIP, path=clip.path, streams=clip.streams, clip_index=index))
    return ConcatPlan(entries=tuple(entries), skipped=tuple(skipped))


def build_encode_command(
    plan: ConcatPlan,
    output: Path,
    ffmpeg: str = "ffmpeg",
    width: int = 1280,
    height: int = 720,
    fps: int = 25,
) -> List[str]:
    cmd = [ffmpeg, "-y"]
    for entry in plan:
        cmd += ["-i", str(entry.path)]

    filters: List[str] = []
    pads: List[str] = []
    audio_format = "aresample=44100,aformat=sample_fmts=fltp:channel_layouts=stereo"
    for idx, entry in enumerate(plan):
        # concat pads a short audio stream with silence in every segment but the last
        duration = entry.streams.duration or 0.1
        if entry.needs_blank_video:
            filters.append(f"color=c=black:s={width}x{height}:r={fps}:d={duration},format=yuv420p,setsar=1[v{idx}]")
        else:
            filters.append(
                f"[{idx}:v:0]scale={width}:{height}:force_original_aspect_ratio=decrease,"
                f"pad={width}:{height}:(ow-iw)/2:(oh-ih)/2,setsar=1,fps={fps},format=yuv420p[v{idx}]"
            )
        if entry.needs_silent_audio:
            filters.append(
                f"anullsrc=channel_layout=stereo:sample_rate=44100,atrim=duration={duration},{audio_format}[a{idx}]"
            )
        else:
            filters.append(f"[{idx}:a:0]{audio_format}[a{idx}]")
        pads.append(f"[v{idx}][a{idx}]")
    filters.append(f"{''.join(pads)}concat=n={len(plan)}:v=1:a=1[outv][outa]")

    cmd += [
        "-filter_complex",
        ";".join(filters),
        "-map",
        "[outv]",
        "-map",
        "[outa]",
        "-c:v",
        "libx264",
        "-pix_fmt",
        "yuv420p",
        "-c:a",
        "aac",
        "-movflags",
        "+faststart",
        str(output),
    ]
    return cmd
