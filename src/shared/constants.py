INVALID_UNICODE_CLEANUP_REGEX = r'[\p{Cf}\p{Cn}\p{Co}\p{Cs}\p{So}]'

DEFAULT_LANGUAGE = "en-US"
DEFAULT_AUDIO_ENCODING = "WEBM_OPUS"

FALLBACK_REPLY = "I'm having trouble processing that right now. Could you try asking in a different way?"

SATISFACTION_SCORE_MIN = 1
SATISFACTION_SCORE_MAX = 5

CUSTOMER_SESSIONS_LIMIT = 10
ACTIVE_SESSIONS_LIMIT = 50
DEFAULT_IDLE_THRESHOLD_SECONDS = 60 * 60

# Ordered stages a shopper moves through; navigation steps along this list.
FUNNEL_STAGES = ["discovery", "browsing", "consideration", "cart", "checkout"]

AUDIO_MIME_TYPES = {
    "WEBM_OPUS": "audio/webm",
    "OGG_OPUS": "audio/ogg",
    "LINEAR16": "audio/wav",
    "FLAC": "audio/flac",
    "MP3": "audio/mp3",
    "MULAW": "audio/basic",
}

# Per-request input limit of the TTS backend is 5000 characters.
MAX_SYNTHESIS_CHUNK_CHARS = 4500
SYNTHESIS_TEXT_MAX_LENGTH = 20000

DEFAULT_DETECTION_LANGUAGES = ["en-US", "es-ES", "fr-FR", "de-DE"]
