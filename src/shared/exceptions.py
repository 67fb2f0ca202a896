class VoiceAssistantError(Exception):
    """Base class for every error the voice pipeline reports to its callers."""


class SessionNotFoundError(VoiceAssistantError):
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} not found")


class SessionTerminalError(VoiceAssistantError):
    def __init__(self, session_id: str, status: str):
        self.session_id = session_id
        self.status = status
        super().__init__(f"Session {session_id} is {status} and accepts no further changes")


class EmptyTranscriptError(VoiceAssistantError):
    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Could not transcribe audio for session {session_id}")


class TranscriptionError(VoiceAssistantError):
    pass


class SynthesisError(VoiceAssistantError):
    pass


class GenerationError(VoiceAssistantError):
    pass


class TurnTimeoutError(VoiceAssistantError):
    def __init__(self, session_id: str, timeout: float):
        self.session_id = session_id
        self.timeout = timeout
        super().__init__(f"Turn for session {session_id} did not complete within {timeout}s")


class StorageError(VoiceAssistantError):
    pass
