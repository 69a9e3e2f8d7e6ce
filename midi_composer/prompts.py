from __future__ import annotations

SCHEMA_KEY_INSTRUMENTS = "instruments"
SCHEMA_KEY_NAME = "name"
SCHEMA_KEY_NOTES = "notes"
NOTE_KEY_MIDI = "midi"
NOTE_KEY_TIME = "time"
NOTE_KEY_DURATION = "duration"
NOTE_KEY_VELOCITY = "velocity"

COMPOSER_SYSTEM_PROMPT = """You are an AI music producer and composer with expert knowledge of music theory, composition, and arrangement.

Your role:
- Compose musical arrangements that layer on top of provided MIDI sections
- Follow common patterns and principles of the specified music genre
- Make decisions that a human composer would make to create pleasing music
- Produce harmonies, rhythms, and accompaniment that avoid dissonance
- Create arrangements that complement the existing musical material

Guidelines:
- Consider the key, tempo, and time signature of the existing music
- Ensure new parts harmonize well with existing melodies
- Use appropriate rhythmic patterns for the genre
- Balance the arrangement so new parts support rather than overpower the original
- Apply standard music production techniques (e.g., call-and-response, countermelody, rhythmic variation)
- Consider the role of each instrument in the overall arrangement

Your output should be musical notation data that can be converted to MIDI format. Output ONLY valid JSON, no markdown."""

OUTPUT_SCHEMA_EXAMPLE = """{
  "instruments": [
    {
      "name": "instrument name",
      "notes": [
        { "midi": 60, "time": 0.0, "duration": 0.5, "velocity": 0.8 },
        ...
      ]
    }
  ]
}"""

OUTPUT_FIELD_HINT = (
    "Where 'midi' is the MIDI note number (0-127), 'time' is in seconds, "
    "'duration' is in seconds, and 'velocity' is 0.0-1.0."
)

COMPOSITION_REQUEST_HINT = """Please provide composition suggestions for each requested instrument. For each instrument, describe:
1. The melodic/harmonic content (specific notes and rhythms)
2. How it complements the existing material
3. Any production techniques or articulations to apply"""

FORMAT_HINT = (
    "Format your response as structured data with note information (pitch, timing, duration, velocity) "
    "that can be programmatically converted to MIDI. Use this JSON structure:"
)
