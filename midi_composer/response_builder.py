from __future__ import annotations

from typing import Any, Dict, List, NamedTuple, Union

try:
    from constants import (
        AI_TRACK_NAME,
        DEFAULT_NOTE_DURATION,
        DEFAULT_NOTE_VELOCITY,
        MIDI_MAX,
        MIDI_MIN,
    )
    from errors import MalformedResponse
    from llm_client import parse_llm_json
    from logger_config import logger
    from midi_document import MidiDocument, Note, Track
    from music_notation import instrument_to_program
    from prompts import (
        NOTE_KEY_DURATION,
        NOTE_KEY_MIDI,
        NOTE_KEY_TIME,
        NOTE_KEY_VELOCITY,
        SCHEMA_KEY_INSTRUMENTS,
        SCHEMA_KEY_NAME,
        SCHEMA_KEY_NOTES,
    )
    from utils import is_number, summarize_text
except ImportError:
    from .constants import (
        AI_TRACK_NAME,
        DEFAULT_NOTE_DURATION,
        DEFAULT_NOTE_VELOCITY,
        MIDI_MAX,
        MIDI_MIN,
    )
    from .errors import MalformedResponse
    from .llm_client import parse_llm_json
    from .logger_config import logger
    from .midi_document import MidiDocument, Note, Track
    from .music_notation import instrument_to_program
    from .prompts import (
        NOTE_KEY_DURATION,
        NOTE_KEY_MIDI,
        NOTE_KEY_TIME,
        NOTE_KEY_VELOCITY,
        SCHEMA_KEY_INSTRUMENTS,
        SCHEMA_KEY_NAME,
        SCHEMA_KEY_NOTES,
    )
    from .utils import is_number, summarize_text


class RejectedNote(NamedTuple):
    entry: Any
    reason: str


def normalize_duration(value: Any) -> float:
    if is_number(value) and value > 0:
        return float(value)
    return DEFAULT_NOTE_DURATION


def normalize_velocity(value: Any) -> float:
    if not is_number(value) or value <= 0:
        return DEFAULT_NOTE_VELOCITY
    if value <= 1:
        return float(value)
    # Models sometimes answer on the 1-127 MIDI scale.
    if value <= MIDI_MAX:
        return float(value) / MIDI_MAX
    return DEFAULT_NOTE_VELOCITY


def validate_note_entry(entry: Any) -> Union[Note, RejectedNote]:
    if not isinstance(entry, dict):
        return RejectedNote(entry, "not_object")
    pitch = entry.get(NOTE_KEY_MIDI)
    start = entry.get(NOTE_KEY_TIME)
    if not is_number(pitch):
        return RejectedNote(entry, "midi_not_numeric")
    if not is_number(start):
        return RejectedNote(entry, "time_not_numeric")
    if not float(pitch).is_integer():
        return RejectedNote(entry, "midi_not_integer")
    if not MIDI_MIN <= pitch <= MIDI_MAX:
        return RejectedNote(entry, "midi_out_of_range")
    if start < 0:
        return RejectedNote(entry, "time_negative")
    return Note(
        pitch=int(pitch),
        time=float(start),
        duration=normalize_duration(entry.get(NOTE_KEY_DURATION)),
        velocity=normalize_velocity(entry.get(NOTE_KEY_VELOCITY)),
    )


def build_track(instrument: Dict[str, Any]) -> Track:
    raw_name = instrument.get(SCHEMA_KEY_NAME)
    name = str(raw_name).strip() if raw_name else ""
    name = name or AI_TRACK_NAME
    program, is_drum = instrument_to_program(name)
    track = Track(name=name, instrument=name, program=program, is_drum=is_drum)

    rejected: Dict[str, int] = {}
    for entry in instrument.get(SCHEMA_KEY_NOTES, []):
        result = validate_note_entry(entry)
        if isinstance(result, RejectedNote):
            rejected[result.reason] = rejected.get(result.reason, 0) + 1
            continue
        track.notes.append(result)
    if rejected:
        logger.warning("Track %r: dropped notes %s", name, rejected)
    return track


def load_instruments(content: str) -> List[Any]:
    try:
        parsed = parse_llm_json(content)
    except ValueError as exc:
        raise MalformedResponse("LLM response is not valid JSON") from exc
    if not isinstance(parsed, dict):
        raise MalformedResponse("LLM response root is not an object")
    instruments = parsed.get(SCHEMA_KEY_INSTRUMENTS)
    if not isinstance(instruments, list):
        raise MalformedResponse(f"LLM response has no '{SCHEMA_KEY_INSTRUMENTS}' list")
    return instruments


def parse_composition_response(content: str) -> List[Track]:
    """Turn the generative service's JSON answer into tracks.

    Unusable JSON yields no tracks; a malformed note only drops that note.
    Tracks left without any valid note are discarded.
    """
    try:
        instruments = load_instruments(content)
    except MalformedResponse as exc:
        logger.warning("%s; no tracks produced. Preview: %s", exc, summarize_text(content or ""))
        return []

    tracks: List[Track] = []
    for instrument in instruments:
        if not isinstance(instrument, dict) or not isinstance(instrument.get(SCHEMA_KEY_NOTES), list):
            logger.warning("Skipping instrument entry without a notes list")
            continue
        track = build_track(instrument)
        if not track.notes:
            logger.warning("Track %r has no valid notes; skipped", track.name)
            continue
        tracks.append(track)
    return tracks


def merge_generated_tracks(output: MidiDocument, tracks: List[Track], offset: float) -> int:
    """Append tracks to the output document, shifting every note by offset seconds."""
    added = 0
    for track in tracks:
        merged = output.add_track(
            name=track.name,
            instrument=track.instrument,
            program=track.program,
            is_drum=track.is_drum,
        )
        for note in track.notes:
            merged.add_note(
                pitch=note.pitch,
                time=note.time + offset,
                duration=note.duration,
                velocity=note.velocity,
            )
        added += 1
    return added
