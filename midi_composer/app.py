from __future__ import annotations

import base64
import binascii

from fastapi import FastAPI, HTTPException
from fastapi.responses import JSONResponse

try:
    from composer import Composer
    from constants import APP_NAME, BRIDGE_HOST, BRIDGE_PORT
    from errors import ComposerError, ExternalServiceError, ParseError
    from logger_config import logger
    from midi_document import MidiDocument
    from models import AnalyzeRequest, ComposeRequest
    from music_analysis import analyze_midi
except ImportError:
    from .composer import Composer
    from .constants import APP_NAME, BRIDGE_HOST, BRIDGE_PORT
    from .errors import ComposerError, ExternalServiceError, ParseError
    from .logger_config import logger
    from .midi_document import MidiDocument
    from .models import AnalyzeRequest, ComposeRequest
    from .music_analysis import analyze_midi

app = FastAPI(title=APP_NAME)


def decode_midi(payload: str) -> bytes:
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise HTTPException(status_code=400, detail="midi_base64 is not valid base64") from exc


def error_status(exc: ComposerError) -> int:
    if isinstance(exc, ParseError):
        return 400
    if isinstance(exc, ExternalServiceError):
        return 502
    return 500


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


@app.post("/analyze")
def analyze(request: AnalyzeRequest) -> JSONResponse:
    source = decode_midi(request.midi_base64)
    try:
        document = MidiDocument.from_bytes(source)
    except ParseError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    analysis = analyze_midi(document)
    return JSONResponse(content=analysis.model_dump())


@app.post("/compose")
def compose(request: ComposeRequest) -> JSONResponse:
    source = decode_midi(request.midi_base64)
    logger.info(
        "Compose: file=%s genre=%s subgenre=%s instruments=%s sections=%d",
        request.midi_filename,
        request.genre,
        request.subgenre,
        request.instruments,
        len(request.sections),
    )
    composer = Composer()
    try:
        data = composer.compose(request, source)
    except ComposerError as exc:
        raise HTTPException(status_code=error_status(exc), detail=str(exc)) from exc

    stats = composer.stats
    return JSONResponse(content={
        "status": composer.state.value,
        "midi_base64": base64.b64encode(data).decode("ascii"),
        "units": stats.units,
        "skipped": stats.skipped,
        "calls": stats.calls,
        "tracks_added": stats.tracks_added,
    })


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=BRIDGE_HOST, port=BRIDGE_PORT, log_level="info")
