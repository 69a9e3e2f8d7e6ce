from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import List, NamedTuple, Optional

try:
    from constants import DEFAULT_SAMPLE_NOTES, FULL_COMPOSITION_LABEL
    from errors import ComposerError, EmptySection
    from llm_client import Generator, make_generator
    from logger_config import logger
    from midi_document import MidiDocument
    from midi_summary import midi_to_text
    from models import CompositionRequest, MusicalAnalysis, SectionSpec, SelectionMode
    from music_analysis import analyze_midi
    from prompt_builder import build_system_prompt, build_user_prompt
    from response_builder import merge_generated_tracks, parse_composition_response
    from section_extractor import extract_time_range, resolve_section_window
    from utils import summarize_text
except ImportError:
    from .constants import DEFAULT_SAMPLE_NOTES, FULL_COMPOSITION_LABEL
    from .errors import ComposerError, EmptySection
    from .llm_client import Generator, make_generator
    from .logger_config import logger
    from .midi_document import MidiDocument
    from .midi_summary import midi_to_text
    from .models import CompositionRequest, MusicalAnalysis, SectionSpec, SelectionMode
    from .music_analysis import analyze_midi
    from .prompt_builder import build_system_prompt, build_user_prompt
    from .response_builder import merge_generated_tracks, parse_composition_response
    from .section_extractor import extract_time_range, resolve_section_window
    from .utils import summarize_text


class CompositionState(str, Enum):
    IDLE = "idle"
    ANALYZING = "analyzing"
    SECTIONED = "sectioned"
    WHOLE_PIECE = "whole_piece"
    MERGING = "merging"
    DONE = "done"
    FAILED = "failed"


class CompositionUnit(NamedTuple):
    label: str
    start: float
    end: float
    instruments: List[str]
    whole_piece: bool = False


class CompositionStats(NamedTuple):
    units: int
    skipped: int
    calls: int
    tracks_added: int


def resolve_instruments(section: SectionSpec, requested: List[str]) -> List[str]:
    if section.mode == SelectionMode.ALL:
        return list(requested)
    if section.mode == SelectionMode.MANUAL:
        return list(section.instruments)
    return []


def plan_units(request: CompositionRequest, duration: float) -> List[CompositionUnit]:
    timed = [section for section in request.sections if section.has_time_range]
    if not timed:
        return [CompositionUnit(FULL_COMPOSITION_LABEL, 0.0, duration, list(request.instruments), whole_piece=True)]
    units: List[CompositionUnit] = []
    for section in timed:
        start, end = resolve_section_window(section, duration)
        units.append(CompositionUnit(
            section.display_label,
            start,
            end,
            resolve_instruments(section, request.instruments),
        ))
    return units


class Composer:
    """Drives one composition request from source bytes to output bytes.

    Units run strictly one after another with a single blocking generator
    call each; the composer is the only writer of the output document.
    """

    def __init__(
        self,
        generator: Optional[Generator] = None,
        max_sample_notes: int = DEFAULT_SAMPLE_NOTES,
    ) -> None:
        self.generator = generator
        self.max_sample_notes = max_sample_notes
        self.state = CompositionState.IDLE
        self.error: Optional[str] = None
        self.stats: Optional[CompositionStats] = None
        self.analysis: Optional[MusicalAnalysis] = None

    def compose(self, request: CompositionRequest, source: bytes) -> bytes:
        current_unit: Optional[str] = None
        try:
            generate = self.generator or make_generator(request.model)

            self.state = CompositionState.ANALYZING
            document = MidiDocument.from_bytes(source)
            self.analysis = analyze_midi(document)
            logger.info(
                "Analysis: duration=%.2fs tempo=%.1f time_sig=%s key=%s tracks=%d",
                self.analysis.duration,
                self.analysis.tempo,
                self.analysis.time_signature,
                self.analysis.key_signature,
                self.analysis.track_count,
            )

            units = plan_units(request, document.duration)
            sectioned = any(section.has_time_range for section in request.sections)
            self.state = CompositionState.SECTIONED if sectioned else CompositionState.WHOLE_PIECE

            output = document.clone()
            skipped = calls = tracks_added = 0
            system_prompt = build_system_prompt()
            for unit in units:
                current_unit = unit.label
                if not unit.instruments:
                    logger.info("Unit %r: no instruments selected, skipping", unit.label)
                    skipped += 1
                    continue
                try:
                    section_doc = self.extract_unit(document, unit)
                except EmptySection as exc:
                    logger.info("%s, skipping", exc)
                    skipped += 1
                    continue

                midi_text = midi_to_text(section_doc, self.max_sample_notes)
                user_prompt = build_user_prompt(
                    self.analysis,
                    midi_text,
                    request.genre,
                    request.subgenre,
                    unit.instruments,
                    unit.label,
                )
                logger.info(
                    "Unit %r: window=[%.2f, %.2f) instruments=%s",
                    unit.label,
                    unit.start,
                    unit.end,
                    ", ".join(unit.instruments),
                )
                content = generate(system_prompt, user_prompt)
                calls += 1
                logger.info("Unit %r response preview: %s", unit.label, summarize_text(content))

                tracks = parse_composition_response(content)
                tracks_added += merge_generated_tracks(output, tracks, unit.start)
            current_unit = None

            self.state = CompositionState.MERGING
            data = output.to_bytes()
        except ComposerError as exc:
            if exc.unit is None:
                exc.unit = current_unit
            self.state = CompositionState.FAILED
            self.error = str(exc)
            logger.error("Composition failed: %s", self.error)
            raise
        except Exception as exc:
            self.state = CompositionState.FAILED
            self.error = f"{exc!r} (unit: {current_unit})" if current_unit else repr(exc)
            logger.exception("Composition failed unexpectedly: %s", self.error)
            raise

        self.stats = CompositionStats(len(units), skipped, calls, tracks_added)
        self.state = CompositionState.DONE
        logger.info(
            "Composition done: units=%d skipped=%d calls=%d tracks_added=%d",
            *self.stats,
        )
        return data

    def extract_unit(self, document: MidiDocument, unit: CompositionUnit) -> MidiDocument:
        if unit.whole_piece:
            section_doc = document.clone()
        else:
            section_doc = extract_time_range(document, unit.start, unit.end)
        if section_doc.note_count == 0:
            raise EmptySection(f"Section '{unit.label}' has no notes in [{unit.start:.2f}, {unit.end:.2f})")
        return section_doc


def compose_file(
    request: CompositionRequest,
    output_path: str,
    generator: Optional[Generator] = None,
) -> CompositionStats:
    if not request.midi_path:
        raise ValueError("CompositionRequest.midi_path is required")
    source = Path(request.midi_path).read_bytes()
    composer = Composer(generator)
    data = composer.compose(request, source)
    Path(output_path).write_bytes(data)
    logger.info("Wrote %d bytes to %s", len(data), output_path)
    return composer.stats
