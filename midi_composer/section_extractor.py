from __future__ import annotations

from typing import Optional, Tuple

try:
    from constants import SECONDS_PER_MINUTE
    from midi_document import KeySignature, MidiDocument, TempoChange, TimeSignature
    from models import SectionSpec
    from utils import leading_float, leading_int
except ImportError:
    from .constants import SECONDS_PER_MINUTE
    from .midi_document import KeySignature, MidiDocument, TempoChange, TimeSignature
    from .models import SectionSpec
    from .utils import leading_float, leading_int

TIME_SEPARATOR = ":"


def parse_time_to_seconds(text: Optional[str]) -> float:
    """Parse "M:SS(.fff)" or bare seconds; unreadable parts count as zero."""
    if not text:
        return 0.0
    text = str(text).strip()
    if TIME_SEPARATOR in text:
        minutes_part, seconds_part = text.split(TIME_SEPARATOR)[:2]
        minutes = leading_int(minutes_part) or 0
        seconds = leading_float(seconds_part) or 0.0
        return minutes * SECONDS_PER_MINUTE + seconds
    return leading_float(text) or 0.0


def resolve_section_window(section: SectionSpec, duration: float) -> Tuple[float, float]:
    start = max(0.0, parse_time_to_seconds(section.start_time))
    end_text = (section.end_time or "").strip()
    end = parse_time_to_seconds(end_text) if end_text else duration
    return start, end


def extract_time_range(document: MidiDocument, start: float, end: float) -> MidiDocument:
    """Copy the notes starting in [start, end) into a new document, shifted to start at zero.

    Every track is carried over, including ones left without notes, so track
    numbering in the section matches the source. An empty or inverted window
    yields a document without notes.
    """
    section = MidiDocument(ticks_per_beat=document.ticks_per_beat)
    tempo = document.first_tempo
    if tempo is not None:
        section.tempos.append(TempoChange(time=0.0, bpm=tempo.bpm))
    time_sig = document.first_time_signature
    if time_sig is not None:
        section.time_signatures.append(
            TimeSignature(time=0.0, numerator=time_sig.numerator, denominator=time_sig.denominator)
        )
    key_sig = document.first_key_signature
    if key_sig is not None:
        section.key_signatures.append(KeySignature(time=0.0, key=key_sig.key))

    for track in document.tracks:
        copied = track.copy_header()
        if start < end:
            for note in track.notes:
                if start <= note.time < end:
                    copied.add_note(
                        pitch=note.pitch,
                        time=note.time - start,
                        duration=note.duration,
                        velocity=note.velocity,
                    )
        section.tracks.append(copied)
    return section
