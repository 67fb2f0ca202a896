import json
import logging
from typing import Optional, Protocol, Sequence

import google.genai as genai
import httpx
from google.genai import errors, types
from pydantic import BaseModel, ValidationError

from src.shared.constants import AUDIO_MIME_TYPES, DEFAULT_AUDIO_ENCODING
from src.shared.exceptions import TranscriptionError
from src.shared.schemas import Transcription
from src.shared.utils.functions import clean_transcript

logger = logging.getLogger(__name__)

TRANSCRIPTION_PROMPT = (
    "Transcribe the spoken words in this audio clip verbatim. The expected "
    "language is {language_code}. Return JSON with the keys 'transcript' "
    "(an empty string if nothing intelligible was said) and 'confidence' "
    "(a number between 0 and 1 expressing how sure you are of the transcript)."
)

LANGUAGE_DETECTION_PROMPT = (
    "Transcribe the spoken words in this audio clip verbatim. The speaker "
    "uses one of these languages: {language_codes}. Return JSON with the keys "
    "'transcript' (an empty string if nothing intelligible was said), "
    "'confidence' (a number between 0 and 1 expressing how sure you are of the "
    "transcript) and 'languageCode' (the code from the list above that matches "
    "the spoken language)."
)


class Transcriber(Protocol):
    async def transcribe(
        self,
        audio: bytes,
        language_code: str,
        encoding: Optional[str] = None,
        alternative_languages: Optional[Sequence[str]] = None,
    ) -> Transcription: ...


class _TranscriptionPayload(BaseModel):
    transcript: str
    confidence: float
    languageCode: Optional[str] = None


def candidate_languages(
    language_code: str, alternative_languages: Optional[Sequence[str]]
) -> list[str]:
    """The expected language first, then the alternatives, without repeats."""
    candidates = [language_code]
    for code in alternative_languages or []:
        if code and code not in candidates:
            candidates.append(code)
    return candidates


class GeminiTranscriber:
    """
    Speech-to-text backed by Gemini's audio understanding.

    With `alternative_languages` the model also picks the spoken language
    from the candidates; an answer outside that list falls back to
    `language_code`.
    """

    def __init__(self, client: genai.Client, model: str):
        self.client = client
        self.model = model

    async def transcribe(
        self,
        audio: bytes,
        language_code: str,
        encoding: Optional[str] = None,
        alternative_languages: Optional[Sequence[str]] = None,
    ) -> Transcription:
        if not audio:
            raise TranscriptionError("Audio payload is empty")

        encoding = (encoding or DEFAULT_AUDIO_ENCODING).upper()
        mime_type = AUDIO_MIME_TYPES.get(encoding)
        if not mime_type:
            raise TranscriptionError(f"Unsupported audio encoding: {encoding}")

        candidates = candidate_languages(language_code, alternative_languages)
        if len(candidates) > 1:
            prompt = LANGUAGE_DETECTION_PROMPT.format(language_codes=", ".join(candidates))
        else:
            prompt = TRANSCRIPTION_PROMPT.format(language_code=language_code)

        config = types.GenerateContentConfig(
            temperature=0,
            response_mime_type="application/json",
            response_schema=_TranscriptionPayload,
        )
        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=[
                    types.Part.from_bytes(data=audio, mime_type=mime_type),
                    prompt,
                ],
                config=config,
            )
        except (errors.APIError, httpx.HTTPError) as e:
            logger.error(f"Gemini API Error during transcription: {e}")
            raise TranscriptionError(f"Transcription service error: {e!s}") from e

        try:
            payload = _TranscriptionPayload.model_validate(json.loads(response.text or ""))
        except (json.JSONDecodeError, ValidationError) as e:
            logger.error(f"Unparseable transcription response: {response.text!r}")
            raise TranscriptionError("Transcription service returned malformed content") from e

        detected = payload.languageCode if payload.languageCode in candidates else language_code
        if detected != language_code:
            logger.debug(f"Detected language {detected} instead of {language_code}")

        return Transcription(
            transcript=clean_transcript(payload.transcript),
            confidence=min(max(payload.confidence, 0.0), 1.0),
            languageCode=detected,
        )
