from __future__ import annotations

import io
from bisect import bisect_right
from collections import defaultdict
from typing import Dict, Iterator, List, Optional, Tuple

import mido
from pydantic import BaseModel, Field

try:
    from constants import (
        DEFAULT_NOTE_DURATION,
        DEFAULT_NOTE_VELOCITY,
        DEFAULT_TEMPO_BPM,
        DEFAULT_TICKS_PER_BEAT,
        DRUM_CHANNEL,
        MIDI_CHANNEL_COUNT,
        MIDI_MAX,
        MIDI_MIN,
        MIDI_VEL_MIN,
    )
    from errors import ParseError
    from logger_config import logger
    from music_notation import midi_to_note, program_to_instrument
    from utils import clamp
except ImportError:
    from .constants import (
        DEFAULT_NOTE_DURATION,
        DEFAULT_NOTE_VELOCITY,
        DEFAULT_TEMPO_BPM,
        DEFAULT_TICKS_PER_BEAT,
        DRUM_CHANNEL,
        MIDI_CHANNEL_COUNT,
        MIDI_MAX,
        MIDI_MIN,
        MIDI_VEL_MIN,
    )
    from .errors import ParseError
    from .logger_config import logger
    from .music_notation import midi_to_note, program_to_instrument
    from .utils import clamp

# Sort order for events sharing a tick.
EVENT_ORDER_META = 0
EVENT_ORDER_PROGRAM = 1
EVENT_ORDER_NOTE_OFF = 2
EVENT_ORDER_NOTE_ON = 3

MIDO_PARSE_ERRORS = (OSError, EOFError, ValueError, KeyError, IndexError, mido.KeySignatureError)


class Note(BaseModel):
    pitch: int = Field(ge=MIDI_MIN, le=MIDI_MAX)
    time: float = Field(ge=0.0)
    duration: float = Field(default=DEFAULT_NOTE_DURATION, gt=0.0)
    velocity: float = Field(default=DEFAULT_NOTE_VELOCITY, ge=0.0, le=1.0)

    @property
    def end(self) -> float:
        return self.time + self.duration

    @property
    def name(self) -> str:
        return midi_to_note(self.pitch)


class Track(BaseModel):
    name: str = ""
    instrument: str = ""
    program: Optional[int] = Field(default=None, ge=0, le=127)
    channel: Optional[int] = Field(default=None, ge=0, le=MIDI_CHANNEL_COUNT - 1)
    is_drum: bool = False
    notes: List[Note] = Field(default_factory=list)

    def add_note(
        self,
        pitch: int,
        time: float,
        duration: float = DEFAULT_NOTE_DURATION,
        velocity: float = DEFAULT_NOTE_VELOCITY,
    ) -> Note:
        note = Note(pitch=pitch, time=time, duration=duration, velocity=velocity)
        self.notes.append(note)
        return note

    def copy_header(self) -> "Track":
        return Track(
            name=self.name,
            instrument=self.instrument,
            program=self.program,
            channel=self.channel,
            is_drum=self.is_drum,
        )


class TempoChange(BaseModel):
    time: float = Field(default=0.0, ge=0.0)
    bpm: float = Field(gt=0.0)


class TimeSignature(BaseModel):
    time: float = Field(default=0.0, ge=0.0)
    numerator: int = Field(gt=0)
    denominator: int = Field(gt=0)

    @property
    def text(self) -> str:
        return f"{self.numerator}/{self.denominator}"


class KeySignature(BaseModel):
    time: float = Field(default=0.0, ge=0.0)
    key: str


class TempoMap:
    """Piecewise-linear conversion between ticks and seconds."""

    def __init__(self, ticks_per_beat: int, changes: List[Tuple[int, int]]) -> None:
        self.ticks_per_beat = ticks_per_beat
        ordered: Dict[int, int] = {}
        for tick, tempo in sorted(changes, key=lambda c: c[0]):
            ordered[tick] = tempo
        if 0 not in ordered:
            ordered[0] = mido.bpm2tempo(DEFAULT_TEMPO_BPM)
        self.segments: List[Tuple[int, float, int]] = []
        seconds = 0.0
        prev_tick = 0
        prev_tempo = ordered[0]
        for tick in sorted(ordered):
            seconds += mido.tick2second(tick - prev_tick, ticks_per_beat, prev_tempo)
            self.segments.append((tick, seconds, ordered[tick]))
            prev_tick = tick
            prev_tempo = ordered[tick]
        self._ticks = [seg[0] for seg in self.segments]
        self._seconds = [seg[1] for seg in self.segments]

    @classmethod
    def from_tempos(cls, tempos: List[TempoChange], ticks_per_beat: int) -> "TempoMap":
        changes: List[Tuple[int, int]] = []
        current = cls(ticks_per_beat, [])
        for tempo in sorted(tempos, key=lambda t: t.time):
            tick = current.to_ticks(tempo.time)
            changes.append((tick, mido.bpm2tempo(tempo.bpm)))
            current = cls(ticks_per_beat, changes)
        return current

    def to_seconds(self, tick: int) -> float:
        idx = bisect_right(self._ticks, tick) - 1
        seg_tick, seg_seconds, tempo = self.segments[max(idx, 0)]
        return seg_seconds + mido.tick2second(tick - seg_tick, self.ticks_per_beat, tempo)

    def to_ticks(self, seconds: float) -> int:
        idx = bisect_right(self._seconds, seconds + 1e-9) - 1
        seg_tick, seg_seconds, tempo = self.segments[max(idx, 0)]
        return seg_tick + int(round(mido.second2tick(seconds - seg_seconds, self.ticks_per_beat, tempo)))


class MidiDocument(BaseModel):
    ticks_per_beat: int = Field(default=DEFAULT_TICKS_PER_BEAT, gt=0)
    tempos: List[TempoChange] = Field(default_factory=list)
    time_signatures: List[TimeSignature] = Field(default_factory=list)
    key_signatures: List[KeySignature] = Field(default_factory=list)
    tracks: List[Track] = Field(default_factory=list)

    @classmethod
    def from_bytes(cls, data: bytes) -> "MidiDocument":
        if not data:
            raise ParseError("MIDI data is empty")
        try:
            midi_file = mido.MidiFile(file=io.BytesIO(data))
        except MIDO_PARSE_ERRORS as exc:
            raise ParseError(f"Invalid MIDI data: {exc}") from exc
        return cls.from_midi_file(midi_file)

    @classmethod
    def from_midi_file(cls, midi_file: mido.MidiFile) -> "MidiDocument":
        ticks_per_beat = midi_file.ticks_per_beat or DEFAULT_TICKS_PER_BEAT

        tempo_events: List[Tuple[int, int]] = []
        time_sig_events: List[Tuple[int, int, int]] = []
        key_events: List[Tuple[int, str]] = []
        for track in midi_file.tracks:
            tick = 0
            for msg in track:
                tick += msg.time
                if msg.type == "set_tempo":
                    tempo_events.append((tick, msg.tempo))
                elif msg.type == "time_signature":
                    time_sig_events.append((tick, msg.numerator, msg.denominator))
                elif msg.type == "key_signature":
                    key_events.append((tick, msg.key))

        tempo_map = TempoMap(ticks_per_beat, tempo_events)
        document = cls(ticks_per_beat=ticks_per_beat)
        seen_tempo_ticks = set()
        for tick, tempo in sorted(tempo_events, key=lambda e: e[0]):
            if tick in seen_tempo_ticks:
                document.tempos[-1] = TempoChange(time=tempo_map.to_seconds(tick), bpm=mido.tempo2bpm(tempo))
                continue
            seen_tempo_ticks.add(tick)
            document.tempos.append(TempoChange(time=tempo_map.to_seconds(tick), bpm=mido.tempo2bpm(tempo)))
        for tick, numerator, denominator in sorted(time_sig_events, key=lambda e: e[0]):
            document.time_signatures.append(
                TimeSignature(time=tempo_map.to_seconds(tick), numerator=numerator, denominator=denominator)
            )
        for tick, key in sorted(key_events, key=lambda e: e[0]):
            document.key_signatures.append(KeySignature(time=tempo_map.to_seconds(tick), key=key))

        for index, track in enumerate(midi_file.tracks):
            parsed = _parse_track(track, tempo_map)
            if parsed is None:
                logger.debug("Skipping meta-only track %d", index)
                continue
            document.tracks.append(parsed)
        return document

    def to_bytes(self) -> bytes:
        tempo_map = TempoMap.from_tempos(self.tempos, self.ticks_per_beat)
        midi_file = mido.MidiFile(type=1, ticks_per_beat=self.ticks_per_beat)

        conductor: List[Tuple[int, int, mido.Message]] = []
        for tempo in self.tempos:
            tick = tempo_map.to_ticks(tempo.time)
            conductor.append((tick, EVENT_ORDER_META, mido.MetaMessage("set_tempo", tempo=mido.bpm2tempo(tempo.bpm))))
        for sig in self.time_signatures:
            tick = tempo_map.to_ticks(sig.time)
            conductor.append((
                tick,
                EVENT_ORDER_META,
                mido.MetaMessage("time_signature", numerator=sig.numerator, denominator=sig.denominator),
            ))
        for key_sig in self.key_signatures:
            tick = tempo_map.to_ticks(key_sig.time)
            conductor.append((tick, EVENT_ORDER_META, mido.MetaMessage("key_signature", key=key_sig.key)))
        midi_file.tracks.append(_events_to_track(conductor))

        for track, channel in zip(self.tracks, self.assign_channels()):
            events: List[Tuple[int, int, mido.Message]] = []
            if track.name:
                events.append((0, EVENT_ORDER_META, mido.MetaMessage("track_name", name=track.name)))
            if track.program is not None and channel != DRUM_CHANNEL:
                events.append((0, EVENT_ORDER_PROGRAM, mido.Message("program_change", channel=channel, program=track.program)))
            for note in track.notes:
                start = tempo_map.to_ticks(note.time)
                end = max(start + 1, tempo_map.to_ticks(note.end))
                velocity = int(round(clamp(note.velocity * MIDI_MAX, MIDI_VEL_MIN, MIDI_MAX)))
                events.append((start, EVENT_ORDER_NOTE_ON, mido.Message("note_on", channel=channel, note=note.pitch, velocity=velocity)))
                events.append((end, EVENT_ORDER_NOTE_OFF, mido.Message("note_off", channel=channel, note=note.pitch, velocity=0)))
            midi_file.tracks.append(_events_to_track(events))

        buffer = io.BytesIO()
        midi_file.save(file=buffer)
        return buffer.getvalue()

    def assign_channels(self) -> List[int]:
        """Channels for serialization: explicit ones are kept, the rest take unused melodic channels."""
        melodic = [c for c in range(MIDI_CHANNEL_COUNT) if c != DRUM_CHANNEL]
        taken = {track.channel for track in self.tracks if track.channel is not None}
        free = [c for c in melodic if c not in taken]
        channels: List[int] = []
        overflow = 0
        for track in self.tracks:
            if track.channel is not None:
                channels.append(track.channel)
            elif track.is_drum:
                channels.append(DRUM_CHANNEL)
            elif free:
                channels.append(free.pop(0))
            else:
                # Every melodic channel is in use; share them round-robin.
                channels.append(melodic[overflow % len(melodic)])
                overflow += 1
        return channels

    def add_track(
        self,
        name: str = "",
        instrument: str = "",
        program: Optional[int] = None,
        channel: Optional[int] = None,
        is_drum: bool = False,
    ) -> Track:
        track = Track(name=name, instrument=instrument, program=program, channel=channel, is_drum=is_drum)
        self.tracks.append(track)
        return track

    def iter_notes(self) -> Iterator[Tuple[Track, Note]]:
        for track in self.tracks:
            for note in track.notes:
                yield track, note

    @property
    def note_count(self) -> int:
        return sum(len(track.notes) for track in self.tracks)

    @property
    def duration(self) -> float:
        return max((note.end for _, note in self.iter_notes()), default=0.0)

    @property
    def first_tempo(self) -> Optional[TempoChange]:
        return self.tempos[0] if self.tempos else None

    @property
    def first_time_signature(self) -> Optional[TimeSignature]:
        return self.time_signatures[0] if self.time_signatures else None

    @property
    def first_key_signature(self) -> Optional[KeySignature]:
        return self.key_signatures[0] if self.key_signatures else None

    def clone(self) -> "MidiDocument":
        return self.model_copy(deep=True)


def _parse_track(track: mido.MidiTrack, tempo_map: TempoMap) -> Optional[Track]:
    name = ""
    program: Optional[int] = None
    channel: Optional[int] = None
    has_channel_messages = False
    open_notes: Dict[Tuple[int, int], List[Tuple[int, int]]] = defaultdict(list)
    spans: List[Tuple[int, int, int, int]] = []

    tick = 0
    for msg in track:
        tick += msg.time
        if msg.type == "track_name" and not name:
            name = msg.name
            continue
        if msg.is_meta or not hasattr(msg, "channel"):
            continue
        has_channel_messages = True
        if channel is None:
            channel = msg.channel
        if msg.type == "program_change" and program is None:
            program = msg.program
        elif msg.type == "note_on" and msg.velocity > 0:
            open_notes[(msg.channel, msg.note)].append((tick, msg.velocity))
        elif msg.type in ("note_on", "note_off"):
            pending = open_notes.get((msg.channel, msg.note))
            if pending:
                start, velocity = pending.pop(0)
                spans.append((start, tick, msg.note, velocity))

    for (_, pitch), pending in open_notes.items():
        for start, velocity in pending:
            spans.append((start, tick, pitch, velocity))

    if not has_channel_messages:
        return None

    is_drum = channel == DRUM_CHANNEL
    parsed = Track(
        name=name,
        instrument=program_to_instrument(program, is_drum),
        program=program,
        channel=channel,
        is_drum=is_drum,
    )
    dropped = 0
    for start, end, pitch, velocity in sorted(spans, key=lambda s: (s[0], s[2])):
        if end <= start:
            dropped += 1
            continue
        start_sec = tempo_map.to_seconds(start)
        parsed.add_note(
            pitch=pitch,
            time=start_sec,
            duration=tempo_map.to_seconds(end) - start_sec,
            velocity=velocity / MIDI_MAX,
        )
    if dropped:
        logger.debug("Track %r: dropped %d zero-length notes", name, dropped)
    return parsed


def _events_to_track(events: List[Tuple[int, int, mido.Message]]) -> mido.MidiTrack:
    track = mido.MidiTrack()
    prev_tick = 0
    for tick, _, msg in sorted(events, key=lambda e: (e[0], e[1])):
        track.append(msg.copy(time=tick - prev_tick))
        prev_tick = tick
    return track
