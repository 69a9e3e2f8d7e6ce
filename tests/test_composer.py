"""
Tests for the composition orchestrator.

The generative client is replaced by a recording fake, so every test runs
offline and can inspect the prompts the composer sent.
"""

import pytest
from pydantic import ValidationError

from midi_composer.composer import (
    Composer,
    CompositionState,
    compose_file,
    plan_units,
    resolve_instruments,
)
from midi_composer.errors import ConfigurationError, ExternalServiceError, ParseError
from midi_composer.midi_document import MidiDocument
from midi_composer.models import CompositionRequest, ModelInfo, SectionSpec
from midi_composer.prompts import COMPOSER_SYSTEM_PROMPT


def make_request(instruments=("Strings", "Bass"), sections=(), **kwargs):
    return CompositionRequest(instruments=list(instruments), sections=list(sections), **kwargs)


class TestPlanning:
    """Tests for unit planning and instrument resolution."""

    def test_mode_all_uses_request_list(self):
        section = SectionSpec(id="a", mode="all")
        assert resolve_instruments(section, ["Strings", "Bass"]) == ["Strings", "Bass"]

    def test_mode_none_is_empty(self):
        section = SectionSpec(id="a", mode="none", instruments=["Strings"])
        assert resolve_instruments(section, ["Strings"]) == []

    def test_mode_manual_uses_section_list(self):
        section = SectionSpec(id="a", mode="manual", instruments=["Bass"])
        assert resolve_instruments(section, ["Strings", "Bass"]) == ["Bass"]

    def test_no_timed_sections_means_whole_piece(self):
        request = make_request(sections=[SectionSpec(id="verse", name="Verse")])
        units = plan_units(request, 42.0)
        assert len(units) == 1
        assert units[0].whole_piece
        assert units[0].label == "Full Composition"
        assert (units[0].start, units[0].end) == (0.0, 42.0)
        assert units[0].instruments == ["Strings", "Bass"]

    def test_untimed_sections_ignored_when_others_are_timed(self):
        request = make_request(sections=[
            SectionSpec(id="a", name="Intro", start_time="0:00", end_time="0:10"),
            SectionSpec(id="b", name="Verse"),
            SectionSpec(id="c", name="Chorus", start_time="0:20"),
        ])
        units = plan_units(request, 50.0)
        assert [u.label for u in units] == ["Intro", "Chorus"]
        assert [(u.start, u.end) for u in units] == [(0.0, 10.0), (20.0, 50.0)]
        assert not any(u.whole_piece for u in units)

    def test_manual_instruments_must_be_requested(self):
        with pytest.raises(ValidationError):
            make_request(
                instruments=["Strings"],
                sections=[SectionSpec(id="a", mode="manual", instruments=["Tuba"])],
            )


class TestCompose:
    """End-to-end runs of Composer.compose with a fake generator."""

    def test_sixty_second_piece_one_section(self, sixty_second_midi_bytes, fake_generator, make_response):
        notes = [{"midi": 48 + (i % 12), "time": float(i), "duration": 1.0, "velocity": 0.7} for i in range(30)]
        generator = fake_generator([make_response(("Strings", notes))])
        request = make_request(
            instruments=["Strings"],
            sections=[SectionSpec(id="intro", name="Intro", start_time="0:00", end_time="0:30", mode="all")],
            genre="Ambient",
        )
        composer = Composer(generator)
        data = composer.compose(request, sixty_second_midi_bytes)

        assert composer.state == CompositionState.DONE
        assert len(generator.calls) == 1
        assert composer.stats.calls == 1
        assert composer.stats.tracks_added == 1

        result = MidiDocument.from_bytes(data)
        source = MidiDocument.from_bytes(sixty_second_midi_bytes)
        assert len(result.tracks) == len(source.tracks) + 1
        added = result.tracks[-1]
        assert added.name == "Strings"
        assert len(added.notes) == 30
        assert all(0.0 <= n.time < 30.0 for n in added.notes)
        # Original material is preserved.
        assert [n.pitch for n in result.tracks[0].notes] == [n.pitch for n in source.tracks[0].notes]

    def test_first_half_all_second_half_none(self, sixty_second_midi_bytes, fake_generator, make_response):
        notes = [{"midi": 36 + (i % 5), "time": i * 2.0, "duration": 1.5, "velocity": 0.9} for i in range(15)]
        generator = fake_generator([make_response(("bass", notes))])
        request = make_request(
            instruments=["bass"],
            sections=[
                SectionSpec(id="first", name="Verse", start_time="0:00", end_time="0:30", mode="all"),
                SectionSpec(id="second", name="Chorus", start_time="0:30", end_time="1:00", mode="none"),
            ],
        )
        composer = Composer(generator)
        data = composer.compose(request, sixty_second_midi_bytes)

        assert len(generator.calls) == 1
        assert "Section: Verse" in generator.calls[0][1]
        assert composer.stats.units == 2
        assert composer.stats.skipped == 1
        result = MidiDocument.from_bytes(data)
        added = result.tracks[-1]
        assert added.name == "bass"
        assert len(added.notes) == 15
        assert all(0.0 <= n.time < 30.0 for n in added.notes)

    def test_prompts_carry_context(self, sixty_second_midi_bytes, fake_generator):
        generator = fake_generator()
        request = make_request(
            instruments=["Strings", "Bass"],
            sections=[SectionSpec(id="v", name="Verse", start_time="0:10", end_time="0:20", mode="manual",
                                  instruments=["Bass"])],
            genre="Rock",
            subgenre="Punk",
        )
        Composer(generator).compose(request, sixty_second_midi_bytes)

        system_prompt, user_prompt = generator.calls[0]
        assert system_prompt == COMPOSER_SYSTEM_PROMPT
        assert "Genre: Rock - Punk" in user_prompt
        assert "Section: Verse" in user_prompt
        assert "- Tempo: 120 BPM" in user_prompt
        assert "- Bass" in user_prompt
        assert "- Strings" not in user_prompt
        assert "Duration: 9.50s" in user_prompt

    def test_offsets_per_section(self, sixty_second_midi_bytes, fake_generator, make_response):
        generator = fake_generator([
            make_response(("Strings", [{"midi": 60, "time": 2.0}])),
            make_response(("Bass", [{"midi": 36, "time": 2.0}])),
        ])
        request = make_request(sections=[
            SectionSpec(id="a", name="Intro", start_time="0:00", end_time="0:30"),
            SectionSpec(id="b", name="Outro", start_time="0:30", end_time="1:00"),
        ])
        data = Composer(generator).compose(request, sixty_second_midi_bytes)
        result = MidiDocument.from_bytes(data)
        assert [t.name for t in result.tracks[-2:]] == ["Strings", "Bass"]
        assert result.tracks[-2].notes[0].time == pytest.approx(2.0, abs=1e-3)
        assert result.tracks[-1].notes[0].time == pytest.approx(32.0, abs=1e-3)

    def test_whole_piece(self, simple_midi_bytes, fake_generator, make_response):
        generator = fake_generator([make_response(("Strings", [{"midi": 60, "time": 1.0}]))])
        composer = Composer(generator)
        data = composer.compose(make_request(), simple_midi_bytes)
        assert len(generator.calls) == 1
        assert "Section: Full Composition" in generator.calls[0][1]
        assert "Track 1 (Piano):" in generator.calls[0][1]
        result = MidiDocument.from_bytes(data)
        assert result.tracks[-1].notes[0].time == pytest.approx(1.0, abs=1e-3)
        assert composer.stats.units == 1

    def test_generated_track_gets_its_own_channel(self, simple_midi_bytes, fake_generator, make_response):
        generator = fake_generator([make_response(("Strings", [{"midi": 60, "time": 0.0}]))])
        data = Composer(generator).compose(make_request(), simple_midi_bytes)
        result = MidiDocument.from_bytes(data)
        assert [(t.name, t.channel, t.program) for t in result.tracks] == [
            ("Piano", 0, 0),
            ("Bass", 1, 33),
            ("Strings", 2, 48),
        ]

    def test_sections_without_instruments_are_skipped(self, sixty_second_midi_bytes, fake_generator):
        generator = fake_generator()
        request = make_request(sections=[
            SectionSpec(id="a", start_time="0:00", end_time="0:10", mode="none"),
            SectionSpec(id="b", start_time="0:10", end_time="0:20", mode="all"),
        ])
        composer = Composer(generator)
        composer.compose(request, sixty_second_midi_bytes)
        assert len(generator.calls) == 1
        assert composer.stats.skipped == 1

    def test_empty_section_is_skipped(self, simple_midi_bytes, fake_generator):
        generator = fake_generator()
        request = make_request(sections=[SectionSpec(id="late", start_time="1:40", end_time="2:00")])
        composer = Composer(generator)
        data = composer.compose(request, simple_midi_bytes)
        assert generator.calls == []
        assert composer.stats.skipped == 1
        assert composer.state == CompositionState.DONE
        assert [t.name for t in MidiDocument.from_bytes(data).tracks] == ["Piano", "Bass"]

    def test_malformed_answer_adds_nothing(self, simple_midi_bytes, fake_generator):
        generator = fake_generator(["not json at all"])
        composer = Composer(generator)
        data = composer.compose(make_request(), simple_midi_bytes)
        assert composer.state == CompositionState.DONE
        assert composer.stats.tracks_added == 0
        assert len(MidiDocument.from_bytes(data).tracks) == 2


class TestFailures:
    """Failure paths leave the composer in the failed state."""

    def test_unreadable_source(self, fake_generator):
        generator = fake_generator()
        composer = Composer(generator)
        with pytest.raises(ParseError):
            composer.compose(make_request(), b"not midi")
        assert composer.state == CompositionState.FAILED
        assert generator.calls == []
        assert composer.error

    def test_service_error_names_the_unit(self, sixty_second_midi_bytes, fake_generator):
        generator = fake_generator(error=ExternalServiceError("LLM HTTP error: 500"))
        request = make_request(sections=[SectionSpec(id="c", name="Chorus", start_time="0:05", end_time="0:15")])
        composer = Composer(generator)
        with pytest.raises(ExternalServiceError) as excinfo:
            composer.compose(request, sixty_second_midi_bytes)
        assert excinfo.value.unit == "Chorus"
        assert "(unit: Chorus)" in str(excinfo.value)
        assert composer.state == CompositionState.FAILED
        assert composer.stats is None

    def test_unexpected_error_still_fails(self, simple_midi_bytes, fake_generator):
        generator = fake_generator(error=ConnectionResetError("connection reset by peer"))
        composer = Composer(generator)
        with pytest.raises(ConnectionResetError):
            composer.compose(make_request(), simple_midi_bytes)
        assert composer.state == CompositionState.FAILED
        assert "connection reset by peer" in composer.error
        assert "Full Composition" in composer.error
        assert composer.stats is None

    def test_missing_credential_fails_before_parsing(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        composer = Composer()
        request = make_request(model=ModelInfo(provider="openai", base_url="https://api.openai.com/v1"))
        with pytest.raises(ConfigurationError):
            composer.compose(request, b"not midi")
        assert composer.state == CompositionState.FAILED
        assert composer.analysis is None


class TestComposeFile:
    """Tests for the file-based entry point."""

    def test_writes_output(self, tmp_path, simple_midi_bytes, fake_generator, make_response):
        source_path = tmp_path / "song.mid"
        source_path.write_bytes(simple_midi_bytes)
        output_path = tmp_path / "out.mid"
        generator = fake_generator([make_response(("Strings", [{"midi": 60, "time": 0.0}]))])
        request = make_request(midi_path=str(source_path))

        stats = compose_file(request, str(output_path), generator)

        assert stats.tracks_added == 1
        result = MidiDocument.from_bytes(output_path.read_bytes())
        assert [t.name for t in result.tracks] == ["Piano", "Bass", "Strings"]

    def test_no_output_on_failure(self, tmp_path, fake_generator):
        source_path = tmp_path / "broken.mid"
        source_path.write_bytes(b"garbage")
        output_path = tmp_path / "out.mid"
        with pytest.raises(ParseError):
            compose_file(make_request(midi_path=str(source_path)), str(output_path), fake_generator())
        assert not output_path.exists()
