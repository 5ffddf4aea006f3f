"""
Prompt Builder - Construct patient-simulation and supervisor prompts

Responsibilities:
- Build the patient persona system instruction
- Render conversation history + new student message as the user turn
- Build the supervisor briefing prompt from a transcript

NOT responsible for:
- LLM calls
- Fallback text on failure (collaborator owns that)
- Model-specific formatting (PromptFormatter owns that)
"""

import logging
from typing import Sequence

from psychebridge.contracts import Interaction, InteractionRole

logger = logging.getLogger(__name__)


class PromptBuildError(Exception):
    """Raised when a prompt cannot be built from its inputs"""
    pass


PATIENT_GUIDELINES = """GUIDELINES:
1. Stay strictly in character. Do not reveal you are an AI.
2. Respond naturally to the student therapist.
3. Express emotions appropriate to your bio (anxiety, defensiveness, sadness, etc.).
4. Provide short to medium-length responses to allow for a back-and-forth dialogue.
5. If the student uses good techniques (like reflections or open-ended questions), gradually become slightly more open, but don't resolve your issues too quickly.
6. If the student is clinical, cold, or judgmental, respond with appropriate withdrawal or irritation."""

BRIEFING_FOCUS = """Provide a concise summary of the student's performance focusing on:
1. Therapeutic Alliance
2. Use of clinical techniques
3. Areas of concern"""


def build_patient_instruction(persona: str) -> str:
    """
    Build the system instruction steering the simulated patient

    Args:
        persona: Patient background text (Course.patient_bio)

    Returns:
        str: System instruction

    Raises:
        PromptBuildError: If persona is empty
    """
    if not persona or not persona.strip():
        raise PromptBuildError("Patient persona is empty")

    return (
        "You are an AI simulating a patient in a psychology training environment.\n"
        f"PATIENT PERSONA: {persona.strip()}\n\n"
        f"{PATIENT_GUIDELINES}"
    )


def format_history_for_patient(history: Sequence[Interaction]) -> str:
    """
    Render history from the patient's point of view

    Student turns are labelled 'Student', patient turns 'You'.
    """
    lines = []
    for entry in history:
        speaker = "Student" if entry.role == InteractionRole.STUDENT else "You"
        lines.append(f"{speaker}: {entry.content}")
    return "\n".join(lines)


def build_patient_prompt(history: Sequence[Interaction], new_message: str) -> str:
    """
    Build the user turn: prior conversation, the new message, and an open 'You:' cue

    Args:
        history: Transcript before this turn (oldest first)
        new_message: Student message being answered

    Returns:
        str: Prompt text
    """
    parts = []
    conversation = format_history_for_patient(history)
    if conversation:
        parts.append(conversation)
    parts.append(f"Student: {new_message.strip()}")
    parts.append("You:")
    return "\n".join(parts)


def format_transcript(transcript: Sequence[Interaction]) -> str:
    """Render a transcript as 'role: content' lines"""
    return "\n".join(f"{entry.role.value}: {entry.content}" for entry in transcript)


def build_briefing_prompt(transcript: Sequence[Interaction]) -> str:
    """
    Build the clinical supervisor briefing prompt

    Args:
        transcript: Complete session transcript

    Returns:
        str: Prompt text

    Raises:
        PromptBuildError: If transcript is empty
    """
    if not transcript:
        raise PromptBuildError("Cannot brief on an empty transcript")

    logger.debug(f"Building briefing prompt for {len(transcript)} interactions")

    return (
        "As a clinical supervisor, analyze the following therapist-patient "
        "interaction transcript.\n"
        f"{BRIEFING_FOCUS}\n\n"
        "Transcript:\n"
        f"{format_transcript(transcript)}"
    )
