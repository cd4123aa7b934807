from .transcribe import DeepgramTranscriber, extract_transcript
from .elevenlabs_tts import ElevenLabsTTS
from .cartesia_tts import CartesiaTTS
from .tts_utils import clean_text_for_tts, require_text, select_tts_provider

__all__ = [
    'DeepgramTranscriber',
    'extract_transcript',
    'ElevenLabsTTS',
    'CartesiaTTS',
    'clean_text_for_tts',
    'require_text',
    'select_tts_provider',
]
