from __future__ import annotations

from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

try:
    from constants import DEFAULT_PROVIDER, MIDI_FILE_EXTENSIONS
except ImportError:
    from .constants import DEFAULT_PROVIDER, MIDI_FILE_EXTENSIONS


class SelectionMode(str, Enum):
    ALL = "all"
    NONE = "none"
    MANUAL = "manual"


class SectionName(str, Enum):
    INTRO = "Intro"
    VERSE = "Verse"
    CHORUS = "Chorus"
    BRIDGE = "Bridge"
    OUTRO = "Outro"
    OTHER = "Other"


class NoteRange(BaseModel):
    model_config = ConfigDict(frozen=True)

    lowest: int
    highest: int


class MusicalAnalysis(BaseModel):
    model_config = ConfigDict(frozen=True)

    duration: float
    tempo: float
    time_signature: str
    key_signature: str
    track_count: int
    note_range: NoteRange


class SectionSpec(BaseModel):
    # Accepts the camelCase keys sent by the browser form as well.
    model_config = ConfigDict(populate_by_name=True)

    id: str = ""
    name: SectionName = SectionName.OTHER
    custom_name: Optional[str] = Field(default=None, alias="customName")
    label: Optional[str] = None
    start_time: Optional[str] = Field(default=None, alias="startTime")
    end_time: Optional[str] = Field(default=None, alias="endTime")
    mode: SelectionMode = SelectionMode.ALL
    instruments: List[str] = Field(default_factory=list)

    @property
    def display_label(self) -> str:
        for candidate in (self.label, self.custom_name, self.name.value, self.id):
            if candidate and str(candidate).strip():
                return str(candidate).strip()
        return ""

    @property
    def has_time_range(self) -> bool:
        return bool((self.start_time or "").strip() or (self.end_time or "").strip())


class ModelInfo(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    provider: str = DEFAULT_PROVIDER
    model_name: Optional[str] = None
    temperature: Optional[float] = None
    base_url: Optional[str] = None
    api_key: Optional[str] = None


class CompositionRequest(BaseModel):
    midi_path: Optional[str] = None
    genre: Optional[str] = None
    subgenre: Optional[str] = None
    instruments: List[str] = Field(min_length=1)
    sections: List[SectionSpec] = Field(default_factory=list)
    model: Optional[ModelInfo] = None

    @field_validator("genre", "subgenre")
    @classmethod
    def blank_to_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        return value or None

    @model_validator(mode="after")
    def check_manual_instruments(self) -> "CompositionRequest":
        known = set(self.instruments)
        for section in self.sections:
            if section.mode != SelectionMode.MANUAL:
                continue
            unknown = [inst for inst in section.instruments if inst not in known]
            if unknown:
                raise ValueError(
                    f"Section '{section.display_label}' selects instruments not in the request: {', '.join(unknown)}"
                )
        return self


class ComposeRequest(CompositionRequest):
    midi_base64: str
    midi_filename: Optional[str] = None

    @field_validator("midi_filename")
    @classmethod
    def check_midi_filename(cls, value: Optional[str]) -> Optional[str]:
        if value and not value.lower().endswith(MIDI_FILE_EXTENSIONS):
            raise ValueError("Only .mid/.midi files are allowed")
        return value


class AnalyzeRequest(BaseModel):
    midi_base64: str
