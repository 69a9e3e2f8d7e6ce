from __future__ import annotations

try:
    from constants import (
        DEFAULT_KEY_SIGNATURE,
        DEFAULT_TEMPO_BPM,
        DEFAULT_TIME_SIG_DEN,
        DEFAULT_TIME_SIG_NUM,
        MIDI_MAX,
        MIDI_MIN,
    )
    from midi_document import MidiDocument
    from models import MusicalAnalysis, NoteRange
except ImportError:
    from .constants import (
        DEFAULT_KEY_SIGNATURE,
        DEFAULT_TEMPO_BPM,
        DEFAULT_TIME_SIG_DEN,
        DEFAULT_TIME_SIG_NUM,
        MIDI_MAX,
        MIDI_MIN,
    )
    from .midi_document import MidiDocument
    from .models import MusicalAnalysis, NoteRange


def analyze_midi(document: MidiDocument) -> MusicalAnalysis:
    # Starts inverted so a document without notes reports lowest=127, highest=0.
    lowest = MIDI_MAX
    highest = MIDI_MIN
    for _, note in document.iter_notes():
        if note.pitch < lowest:
            lowest = note.pitch
        if note.pitch > highest:
            highest = note.pitch

    tempo = document.first_tempo
    time_sig = document.first_time_signature
    key_sig = document.first_key_signature

    if time_sig is not None:
        time_sig_text = time_sig.text
    else:
        time_sig_text = f"{DEFAULT_TIME_SIG_NUM}/{DEFAULT_TIME_SIG_DEN}"

    return MusicalAnalysis(
        duration=document.duration,
        tempo=tempo.bpm if tempo is not None else DEFAULT_TEMPO_BPM,
        time_signature=time_sig_text,
        key_signature=key_sig.key if key_sig is not None else DEFAULT_KEY_SIGNATURE,
        track_count=len(document.tracks),
        note_range=NoteRange(lowest=lowest, highest=highest),
    )
