from __future__ import annotations

import re
from typing import Optional, Tuple

NOTE_NAMES = ["C", "C#", "D", "D#", "E", "F", "F#", "G", "G#", "A", "A#", "B"]
NOTE_NAMES_FLAT = ["C", "Db", "D", "Eb", "E", "F", "Gb", "G", "Ab", "A", "Bb", "B"]

GM_PROGRAM_NAMES = [
    "acoustic grand piano", "bright acoustic piano", "electric grand piano", "honky-tonk piano",
    "electric piano 1", "electric piano 2", "harpsichord", "clavi",
    "celesta", "glockenspiel", "music box", "vibraphone",
    "marimba", "xylophone", "tubular bells", "dulcimer",
    "drawbar organ", "percussive organ", "rock organ", "church organ",
    "reed organ", "accordion", "harmonica", "tango accordion",
    "acoustic guitar (nylon)", "acoustic guitar (steel)", "electric guitar (jazz)", "electric guitar (clean)",
    "electric guitar (muted)", "overdriven guitar", "distortion guitar", "guitar harmonics",
    "acoustic bass", "electric bass (finger)", "electric bass (pick)", "fretless bass",
    "slap bass 1", "slap bass 2", "synth bass 1", "synth bass 2",
    "violin", "viola", "cello", "contrabass",
    "tremolo strings", "pizzicato strings", "orchestral harp", "timpani",
    "string ensemble 1", "string ensemble 2", "synthstrings 1", "synthstrings 2",
    "choir aahs", "voice oohs", "synth voice", "orchestra hit",
    "trumpet", "trombone", "tuba", "muted trumpet",
    "french horn", "brass section", "synthbrass 1", "synthbrass 2",
    "soprano sax", "alto sax", "tenor sax", "baritone sax",
    "oboe", "english horn", "bassoon", "clarinet",
    "piccolo", "flute", "recorder", "pan flute",
    "blown bottle", "shakuhachi", "whistle", "ocarina",
    "lead 1 (square)", "lead 2 (sawtooth)", "lead 3 (calliope)", "lead 4 (chiff)",
    "lead 5 (charang)", "lead 6 (voice)", "lead 7 (fifths)", "lead 8 (bass + lead)",
    "pad 1 (new age)", "pad 2 (warm)", "pad 3 (polysynth)", "pad 4 (choir)",
    "pad 5 (bowed)", "pad 6 (metallic)", "pad 7 (halo)", "pad 8 (sweep)",
    "fx 1 (rain)", "fx 2 (soundtrack)", "fx 3 (crystal)", "fx 4 (atmosphere)",
    "fx 5 (brightness)", "fx 6 (goblins)", "fx 7 (echoes)", "fx 8 (sci-fi)",
    "sitar", "banjo", "shamisen", "koto",
    "kalimba", "bag pipe", "fiddle", "shanai",
    "tinkle bell", "agogo", "steel drums", "woodblock",
    "taiko drum", "melodic tom", "synth drum", "reverse cymbal",
    "guitar fret noise", "breath noise", "seashore", "bird tweet",
    "telephone ring", "helicopter", "applause", "gunshot",
]

DRUM_KIT_LABEL = "standard kit"

DRUM_KEYWORDS = ("drum", "drums", "drumkit", "percussion", "perc", "kit", "beat", "beats")
DRUM_NAME_RE = re.compile(r"\b(?:" + "|".join(DRUM_KEYWORDS) + r")\b")

# Checked in order; the first keyword found in an instrument name wins, so
# longer names come before the shorter names they contain.
INSTRUMENT_KEYWORD_PROGRAMS = (
    ("bassoon", 70),
    ("synth bass", 38),
    ("bass", 33),
    ("electric guitar", 27),
    ("acoustic guitar", 25),
    ("guitar", 25),
    ("electric piano", 4),
    ("rhodes", 4),
    ("piano", 0),
    ("keys", 0),
    ("organ", 16),
    ("violin", 40),
    ("viola", 41),
    ("cello", 42),
    ("strings", 48),
    ("string", 48),
    ("harpsichord", 6),
    ("harp", 46),
    ("choir", 52),
    ("vocal", 53),
    ("voice", 53),
    ("trumpet", 56),
    ("trombone", 57),
    ("tuba", 58),
    ("horn", 60),
    ("brass", 61),
    ("sax", 65),
    ("oboe", 68),
    ("clarinet", 71),
    ("flute", 73),
    ("pad", 89),
    ("lead", 81),
    ("synth", 81),
    ("bells", 14),
    ("marimba", 12),
    ("vibraphone", 11),
)


def midi_to_note(pitch: int, use_flats: bool = False) -> str:
    note_names = NOTE_NAMES_FLAT if use_flats else NOTE_NAMES
    note = note_names[pitch % 12]
    octave = (pitch // 12) - 1
    return f"{note}{octave}"


def program_to_instrument(program: Optional[int], is_drum: bool = False) -> str:
    if is_drum:
        return DRUM_KIT_LABEL
    if program is None or not 0 <= program < len(GM_PROGRAM_NAMES):
        return ""
    return GM_PROGRAM_NAMES[program]


def is_drum_name(name: str) -> bool:
    lowered = str(name or "").lower()
    return DRUM_NAME_RE.search(lowered) is not None


def instrument_to_program(name: str) -> Tuple[Optional[int], bool]:
    """Map a free-form instrument name to a General MIDI program.

    Returns ``(program, is_drum)``; drums carry no program because they
    play on the percussion channel. Unknown names map to ``(None, False)``.
    """
    lowered = str(name or "").strip().lower()
    if not lowered:
        return None, False
    if lowered in GM_PROGRAM_NAMES:
        return GM_PROGRAM_NAMES.index(lowered), False
    if is_drum_name(lowered):
        return None, True
    for keyword, program in INSTRUMENT_KEYWORD_PROGRAMS:
        if keyword in lowered:
            return program, False
    return None, False
