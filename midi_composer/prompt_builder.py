from __future__ import annotations

from typing import Dict, List, Optional

try:
    from models import MusicalAnalysis
    from prompts import (
        COMPOSER_SYSTEM_PROMPT,
        COMPOSITION_REQUEST_HINT,
        FORMAT_HINT,
        OUTPUT_FIELD_HINT,
        OUTPUT_SCHEMA_EXAMPLE,
    )
except ImportError:
    from .models import MusicalAnalysis
    from .prompts import (
        COMPOSER_SYSTEM_PROMPT,
        COMPOSITION_REQUEST_HINT,
        FORMAT_HINT,
        OUTPUT_FIELD_HINT,
        OUTPUT_SCHEMA_EXAMPLE,
    )


def build_system_prompt() -> str:
    return COMPOSER_SYSTEM_PROMPT


def format_genre(genre: Optional[str], subgenre: Optional[str]) -> str:
    return " - ".join(part for part in (genre, subgenre) if part)


def format_bpm(bpm: float) -> str:
    if float(bpm).is_integer():
        return str(int(bpm))
    return f"{bpm:.2f}"


def build_user_prompt(
    analysis: MusicalAnalysis,
    midi_text: str,
    genre: Optional[str],
    subgenre: Optional[str],
    instruments: List[str],
    section_label: str,
) -> str:
    lines: List[str] = ["Please compose musical arrangements for the following MIDI section.", ""]

    genre_text = format_genre(genre, subgenre)
    if genre_text:
        lines.append(f"Genre: {genre_text}")
    lines.append(f"Section: {section_label}")
    lines.append("")

    lines.extend([
        "Musical Analysis:",
        f"- Duration: {analysis.duration:.2f} seconds",
        f"- Tempo: {format_bpm(analysis.tempo)} BPM",
        f"- Time Signature: {analysis.time_signature}",
        f"- Key: {analysis.key_signature}",
        f"- Existing Tracks: {analysis.track_count}",
        f"- Note Range: {analysis.note_range.lowest} to {analysis.note_range.highest}",
        "",
        "Requested Instruments to Add:",
    ])
    lines.extend(f"- {inst}" for inst in instruments)
    lines.append("")

    lines.append("Existing MIDI Content:")
    lines.append(midi_text)

    lines.append(COMPOSITION_REQUEST_HINT)
    lines.append("")
    lines.append(FORMAT_HINT)
    lines.append("")
    lines.append(OUTPUT_SCHEMA_EXAMPLE)
    lines.append("")
    lines.append(OUTPUT_FIELD_HINT)
    return "\n".join(lines)


def build_chat_messages(system_prompt: str, user_prompt: str) -> List[Dict[str, str]]:
    return [
        {"role": "system", "content": system_prompt},
        {"role": "user", "content": user_prompt},
    ]
