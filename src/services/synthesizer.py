import asyncio
import io
import logging
import wave
from typing import Optional, Protocol

import google.genai as genai
import httpx
import regex
from google.genai import errors, types
from pydantic import BaseModel

from src.shared.constants import MAX_SYNTHESIS_CHUNK_CHARS
from src.shared.exceptions import SynthesisError
from src.shared.schemas import SynthesisResult

logger = logging.getLogger(__name__)

# Gemini TTS returns raw 16-bit mono PCM at 24kHz.
PCM_SAMPLE_RATE_HZ = 24000
PCM_SAMPLE_WIDTH_BYTES = 2

_SENTENCE_PATTERN = regex.compile(r"[^.!?]+(?:[.!?]+|$)")


class VoiceProfile(BaseModel):
    languageCode: str
    voiceName: str
    style: Optional[str] = None


VOICE_PROFILES = {
    "PROFESSIONAL_FEMALE": VoiceProfile(languageCode="en-US", voiceName="Kore", style="friendly and professional"),
    "PROFESSIONAL_MALE": VoiceProfile(languageCode="en-US", voiceName="Charon", style="friendly and professional"),
    "CASUAL_FEMALE": VoiceProfile(languageCode="en-US", voiceName="Aoede", style="casual and upbeat"),
    "CASUAL_MALE": VoiceProfile(languageCode="en-US", voiceName="Puck", style="casual and upbeat"),
    "LUXURY_FEMALE": VoiceProfile(languageCode="en-GB", voiceName="Leda", style="calm and sophisticated"),
    "LUXURY_MALE": VoiceProfile(languageCode="en-GB", voiceName="Orus", style="calm and sophisticated"),
}


def resolve_voice_profile(
    name: Optional[str],
    language_code: Optional[str] = None,
    default: str = "PROFESSIONAL_FEMALE",
) -> VoiceProfile:
    """Looks up a named profile, falling back to the default for unknown names."""
    profile = VOICE_PROFILES.get((name or "").upper()) or VOICE_PROFILES[default]
    if language_code:
        profile = profile.model_copy(update={"languageCode": language_code})
    return profile


def pcm_to_wav(pcm: bytes) -> bytes:
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(1)
        wav.setsampwidth(PCM_SAMPLE_WIDTH_BYTES)
        wav.setframerate(PCM_SAMPLE_RATE_HZ)
        wav.writeframes(pcm)
    return buffer.getvalue()


def split_into_chunks(text: str, max_chars: int = MAX_SYNTHESIS_CHUNK_CHARS) -> list[str]:
    """
    Splits text on sentence boundaries into chunks of at most `max_chars`.
    A sentence longer than `max_chars` is cut at word boundaries, or hard
    cut when a single word is too long.
    """
    sentences = [s.strip() for s in _SENTENCE_PATTERN.findall(text) if s.strip()]

    pieces = []
    for sentence in sentences:
        if len(sentence) <= max_chars:
            pieces.append(sentence)
            continue
        current = ""
        for word in sentence.split():
            while len(word) > max_chars:
                if current:
                    pieces.append(current)
                    current = ""
                pieces.append(word[:max_chars])
                word = word[max_chars:]
            candidate = f"{current} {word}" if current else word
            if len(candidate) > max_chars:
                pieces.append(current)
                current = word
            else:
                current = candidate
        if current:
            pieces.append(current)

    chunks = []
    current = ""
    for piece in pieces:
        if current and len(current) + 1 + len(piece) > max_chars:
            chunks.append(current)
            current = piece
        else:
            current = f"{current} {piece}" if current else piece
    if current:
        chunks.append(current)
    return chunks


class Synthesizer(Protocol):
    async def synthesize(self, text: str, voice_profile: VoiceProfile) -> SynthesisResult: ...


class GeminiSynthesizer:
    """
    Text-to-speech backed by Gemini TTS. Long text is synthesized chunk by
    chunk along sentence boundaries and joined into a single WAV.
    """

    def __init__(self, client: genai.Client, model: str, max_chunk_chars: int = MAX_SYNTHESIS_CHUNK_CHARS):
        self.client = client
        self.model = model
        self.max_chunk_chars = max_chunk_chars

    async def synthesize(self, text: str, voice_profile: VoiceProfile) -> SynthesisResult:
        chunks = split_into_chunks(text, self.max_chunk_chars)
        if not chunks:
            raise SynthesisError("Nothing to synthesize")
        if len(chunks) > 1:
            logger.debug(f"Synthesizing {len(text)} characters in {len(chunks)} chunks")
        pcm_chunks = await asyncio.gather(
            *(self._synthesize_pcm(chunk, voice_profile) for chunk in chunks)
        )
        return SynthesisResult(audio=pcm_to_wav(b"".join(pcm_chunks)), mimeType="audio/wav")

    async def _synthesize_pcm(self, text: str, voice_profile: VoiceProfile) -> bytes:
        prompt = text
        if voice_profile.style:
            prompt = f"Say in a {voice_profile.style} tone: {text}"

        config = types.GenerateContentConfig(
            response_modalities=["AUDIO"],
            speech_config=types.SpeechConfig(
                language_code=voice_profile.languageCode,
                voice_config=types.VoiceConfig(
                    prebuilt_voice_config=types.PrebuiltVoiceConfig(
                        voice_name=voice_profile.voiceName,
                    )
                ),
            ),
        )
        try:
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=prompt,
                config=config,
            )
        except (errors.APIError, httpx.HTTPError) as e:
            logger.error(f"Gemini API Error during synthesis: {e}")
            raise SynthesisError(f"Failed to synthesize speech: {e!s}") from e

        for candidate in response.candidates or []:
            for part in (candidate.content.parts if candidate.content else None) or []:
                if part.inline_data and part.inline_data.data:
                    return part.inline_data.data

        raise SynthesisError("No audio content returned from TTS service")
