from __future__ import annotations

from typing import List

try:
    from constants import DEFAULT_SAMPLE_NOTES, SUMMARY_DECIMALS, UNKNOWN_INSTRUMENT, UNNAMED_TRACK
    from midi_document import MidiDocument
except ImportError:
    from .constants import DEFAULT_SAMPLE_NOTES, SUMMARY_DECIMALS, UNKNOWN_INSTRUMENT, UNNAMED_TRACK
    from .midi_document import MidiDocument


def fmt(value: float) -> str:
    return f"{value:.{SUMMARY_DECIMALS}f}"


def midi_to_text(document: MidiDocument, max_notes: int = DEFAULT_SAMPLE_NOTES) -> str:
    lines: List[str] = [
        f"Duration: {fmt(document.duration)}s",
        f"Tracks: {len(document.tracks)}",
        "",
    ]
    for idx, track in enumerate(document.tracks, start=1):
        if not track.notes:
            continue
        shown = min(len(track.notes), max(0, max_notes))
        lines.append(f"Track {idx} ({track.name or UNNAMED_TRACK}):")
        lines.append(f"  Instrument: {track.instrument or UNKNOWN_INSTRUMENT}")
        lines.append(f"  Notes: {len(track.notes)}")
        lines.append(f"  Sample (first {shown} notes):")
        for note in track.notes[:shown]:
            lines.append(
                f"    {note.name} @ {fmt(note.time)}s, duration: {fmt(note.duration)}s, velocity: {fmt(note.velocity)}"
            )
        lines.append("")
    return "\n".join(lines) + "\n"
