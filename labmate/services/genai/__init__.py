"""GenAI services (credential pool, resilient executor, Gemini)."""

from labmate.services.genai.credential_pool import Credential, CredentialPool, Strategy
from labmate.services.genai.exceptions import (
    AllCredentialsFailedError,
    CredentialSuspendedError,
    GenAIServiceError,
    PoolExhaustedError,
    QuotaOrPermissionError,
    TransientError,
)
from labmate.services.genai.executor import ResilientExecutor, classify_error
from labmate.services.genai.gemini import GeminiService, parse_json_response, strip_markdown_fences
from labmate.services.genai.protocol import ContentPart, GenerationService

__all__ = [
    # Protocol and types
    "GenerationService",
    "ContentPart",
    "Credential",
    "Strategy",
    # Implementation
    "CredentialPool",
    "ResilientExecutor",
    "GeminiService",
    # Utilities
    "classify_error",
    "parse_json_response",
    "strip_markdown_fences",
    # Exceptions
    "GenAIServiceError",
    "PoolExhaustedError",
    "CredentialSuspendedError",
    "QuotaOrPermissionError",
    "TransientError",
    "AllCredentialsFailedError",
]
