"""
AI Collaborator - Patient simulation and supervisor briefings

Responsibilities:
- Generate an in-character patient reply for a student message
- Generate a supervisor briefing over a finished transcript
- Absorb every generation failure into displayable fallback text

Design principles:
- Never raises to the caller: both operations always return a
  CollaboratorReply, with failed=True when the text is a fallback
- Template methods: subclasses implement the raw generation,
  the base class owns the never-raise contract
- Single-shot calls, no retries or streaming
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from psychebridge.contracts import Interaction
from psychebridge.errors import CollaboratorFailure
from psychebridge.utils import prompt_builder

logger = logging.getLogger(__name__)

PATIENT_ERROR_FALLBACK = (
    "I'm sorry, I'm feeling a bit overwhelmed and can't talk right now. (System Error)"
)
PATIENT_EMPTY_FALLBACK = "I'm not sure how to respond to that right now..."
BRIEFING_ERROR_FALLBACK = "Error generating briefing."
BRIEFING_EMPTY_FALLBACK = "No summary available."


@dataclass(frozen=True)
class CollaboratorReply:
    """
    Tagged generation result.

    Attributes:
        text: Displayable text (generated, or fallback)
        failed: True if generation raised and text is the error fallback
        error: '<ExceptionType>: <message>' when failed
    """
    text: str
    failed: bool = False
    error: Optional[str] = None


class PatientCollaborator:
    """
    Base collaborator.

    Subclasses implement _generate_patient_text() and
    _generate_briefing_text(); either may raise.
    """

    def generate_patient_reply(self, persona: str, history: Sequence[Interaction],
                               new_message: str) -> CollaboratorReply:
        """
        Generate the simulated patient's reply

        Args:
            persona: Patient background text
            history: Transcript before this turn (oldest first)
            new_message: Student message to answer

        Returns:
            CollaboratorReply (never raises)
        """
        return self._guarded(
            "patient reply",
            lambda: self._generate_patient_text(persona, list(history), new_message),
            error_fallback=PATIENT_ERROR_FALLBACK,
            empty_fallback=PATIENT_EMPTY_FALLBACK
        )

    def generate_supervisor_briefing(self, transcript: Sequence[Interaction]) -> CollaboratorReply:
        """
        Generate a supervisor briefing for a transcript

        Args:
            transcript: Complete session transcript

        Returns:
            CollaboratorReply (never raises)
        """
        return self._guarded(
            "supervisor briefing",
            lambda: self._generate_briefing_text(list(transcript)),
            error_fallback=BRIEFING_ERROR_FALLBACK,
            empty_fallback=BRIEFING_EMPTY_FALLBACK
        )

    def _guarded(self, label: str, produce: Callable[[], str],
                 error_fallback: str, empty_fallback: str) -> CollaboratorReply:
        try:
            text = produce()
            if text is not None and not isinstance(text, str):
                raise CollaboratorFailure(f"{label}: expected text, got {type(text).__name__}")
        except Exception as e:
            logger.error(f"{label} generation failed: {type(e).__name__}: {e}")
            return CollaboratorReply(
                text=error_fallback,
                failed=True,
                error=f"{type(e).__name__}: {e}"
            )

        text = (text or "").strip()
        if not text:
            logger.warning(f"{label} generation returned empty text")
            return CollaboratorReply(text=empty_fallback)

        return CollaboratorReply(text=text)

    def _generate_patient_text(self, persona: str, history: list, new_message: str) -> str:
        raise NotImplementedError

    def _generate_briefing_text(self, transcript: list) -> str:
        raise NotImplementedError


class LLMCollaborator(PatientCollaborator):
    """Collaborator backed by a local HuggingFace model"""

    PATIENT_TEMPERATURE = 0.8
    PATIENT_TOP_P = 0.9
    PATIENT_MAX_TOKENS = 256
    BRIEFING_TEMPERATURE = 0.3
    BRIEFING_MAX_TOKENS = 600

    def __init__(self, hf_client):
        """
        Args:
            hf_client: Object with callable generate() and is_loaded()
                (HuggingFaceClient in production, a mock in tests)

        Raises:
            TypeError: If hf_client lacks generate()
            RuntimeError: If the model is not loaded
        """
        if not callable(getattr(hf_client, 'generate', None)):
            raise TypeError("hf_client must have callable generate() method")

        if callable(getattr(hf_client, 'is_loaded', None)) and not hf_client.is_loaded():
            raise RuntimeError("HuggingFace client model not loaded")

        self.hf_client = hf_client
        logger.info("LLM collaborator initialized")

    def _invoke(self, label: str, **kwargs) -> str:
        try:
            result = self.hf_client.generate(**kwargs)
        except Exception as e:
            raise CollaboratorFailure(f"{label}: {e}") from e

        if not isinstance(result, str):
            raise CollaboratorFailure(f"{label}: expected text, got {type(result).__name__}")
        return result

    def _generate_patient_text(self, persona: str, history: list, new_message: str) -> str:
        instruction = prompt_builder.build_patient_instruction(persona)
        prompt = prompt_builder.build_patient_prompt(history, new_message)

        text = self._invoke(
            "patient reply",
            prompt=prompt,
            system_instruction=instruction,
            max_tokens=self.PATIENT_MAX_TOKENS,
            temperature=self.PATIENT_TEMPERATURE,
            top_p=self.PATIENT_TOP_P
        )
        return self._clean_reply(text)

    def _generate_briefing_text(self, transcript: list) -> str:
        prompt = prompt_builder.build_briefing_prompt(transcript)
        return self._invoke(
            "supervisor briefing",
            prompt=prompt,
            max_tokens=self.BRIEFING_MAX_TOKENS,
            temperature=self.BRIEFING_TEMPERATURE
        )

    def _clean_reply(self, text: str) -> str:
        """
        Strip echoed speaker labels and any continuation the model wrote
        for the student's side of the conversation.
        """
        text = text.strip()
        if text.startswith("You:"):
            text = text[len("You:"):].strip()

        # Model kept going and wrote the next student line
        cut = text.find("\nStudent:")
        if cut != -1:
            text = text[:cut].strip()

        return text
