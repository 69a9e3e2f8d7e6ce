"""
Pytest fixtures for midi_composer tests.
"""
import io
import json
import sys
from pathlib import Path

import mido
import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


def _build_midi(
    tracks,
    bpm=120,
    time_signature=(4, 4),
    key="C",
    ticks_per_beat=480,
    tempo_changes=None,
):
    """Build SMF bytes. ``tracks`` is a list of dicts with name/program/channel
    and notes as (pitch, start_tick, length_ticks, velocity)."""
    midi_file = mido.MidiFile(type=1, ticks_per_beat=ticks_per_beat)

    conductor = mido.MidiTrack()
    meta = []
    if bpm is not None:
        meta.append((0, mido.MetaMessage("set_tempo", tempo=mido.bpm2tempo(bpm))))
    if time_signature is not None:
        num, den = time_signature
        meta.append((0, mido.MetaMessage("time_signature", numerator=num, denominator=den)))
    if key is not None:
        meta.append((0, mido.MetaMessage("key_signature", key=key)))
    for tick, tempo_bpm in tempo_changes or []:
        meta.append((tick, mido.MetaMessage("set_tempo", tempo=mido.bpm2tempo(tempo_bpm))))
    prev = 0
    for tick, msg in sorted(meta, key=lambda m: m[0]):
        conductor.append(msg.copy(time=tick - prev))
        prev = tick
    midi_file.tracks.append(conductor)

    for track_def in tracks:
        channel = track_def.get("channel", 0)
        events = []
        if track_def.get("name"):
            events.append((0, 0, mido.MetaMessage("track_name", name=track_def["name"])))
        if track_def.get("program") is not None:
            events.append((0, 1, mido.Message("program_change", channel=channel, program=track_def["program"])))
        for pitch, start, length, velocity in track_def.get("notes", []):
            events.append((start, 3, mido.Message("note_on", channel=channel, note=pitch, velocity=velocity)))
            events.append((start + length, 2, mido.Message("note_off", channel=channel, note=pitch, velocity=0)))
        track = mido.MidiTrack()
        prev = 0
        for tick, _, msg in sorted(events, key=lambda e: (e[0], e[1])):
            track.append(msg.copy(time=tick - prev))
            prev = tick
        midi_file.tracks.append(track)

    buffer = io.BytesIO()
    midi_file.save(file=buffer)
    return buffer.getvalue()


@pytest.fixture
def build_midi():
    """Factory for MIDI bytes (see ``_build_midi``)."""
    return _build_midi


@pytest.fixture
def simple_midi_bytes():
    """Two-track piece at 120 BPM (one beat = 0.5 s): piano melody and a bass line."""
    return _build_midi([
        {
            "name": "Piano",
            "program": 0,
            "channel": 0,
            "notes": [(60, 0, 480, 100), (64, 480, 480, 90), (67, 960, 960, 80)],
        },
        {
            "name": "Bass",
            "program": 33,
            "channel": 1,
            "notes": [(36, 0, 1920, 110)],
        },
    ])


@pytest.fixture
def sixty_second_midi_bytes():
    """One piano track with a half-second note every second, ending exactly at 60 s."""
    notes = [(60 + (i % 12), i * 960, 480, 96) for i in range(59)]
    notes.append((72, 59 * 960, 960, 96))
    return _build_midi([{"name": "Piano", "program": 0, "channel": 0, "notes": notes}])


class FakeGenerator:
    """Stands in for the generative client; records every prompt it receives."""

    def __init__(self, responses=None, error=None):
        self.responses = list(responses or [])
        self.error = error
        self.calls = []

    def __call__(self, system_prompt, user_prompt):
        self.calls.append((system_prompt, user_prompt))
        if self.error is not None:
            raise self.error
        if self.responses:
            return self.responses.pop(0)
        return json.dumps({"instruments": []})


@pytest.fixture
def fake_generator():
    return FakeGenerator


def instruments_response(*instruments):
    """JSON text in the generative client's response schema."""
    return json.dumps({
        "instruments": [{"name": name, "notes": notes} for name, notes in instruments]
    })


@pytest.fixture
def make_response():
    return instruments_response
