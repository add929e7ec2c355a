"""
tts-proxy: OpenAI-compatible text-to-speech proxy.

Accepts ``/v1/audio/speech`` requests, cleans and splits the input text,
synthesizes every unit against the Microsoft neural speech backend under a
bounded concurrency, and answers with one audio body or a live stream.

Example Usage:
    >>> import asyncio
    >>> from tts_proxy.core.config import Settings
    >>> from tts_proxy.services import SpeechService, SpeechRequest
    >>>
    >>> service = SpeechService(Settings(raw={}))
    >>> result = asyncio.run(service.synthesize(SpeechRequest(input="Hello. World!")))
    >>> with open("hello.mp3", "wb") as f:
    ...     f.write(result.audio)
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
