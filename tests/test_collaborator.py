"""
Test AI collaborator - prompts, never-raise contract, fallbacks

Uses a mock HuggingFace client; no model is loaded.

Run with: pytest tests/test_collaborator.py -v
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from psychebridge.contracts import Interaction
from psychebridge.core.collaborator import (
    BRIEFING_EMPTY_FALLBACK,
    BRIEFING_ERROR_FALLBACK,
    PATIENT_EMPTY_FALLBACK,
    PATIENT_ERROR_FALLBACK,
    LLMCollaborator,
    PatientCollaborator,
)
from psychebridge.utils import prompt_builder
from psychebridge.utils.prompt_formatter import PromptFormatter

PERSONA = "You are Alex, a 34-year-old software engineer."


class MockHFClient:
    """Mock HuggingFace client recording generate() calls"""

    def __init__(self, response="I guess I'm okay.", should_fail=False, loaded=True):
        self.response = response
        self.should_fail = should_fail
        self.loaded = loaded
        self.calls = []

    def is_loaded(self):
        return self.loaded

    def generate(self, prompt, system_instruction=None, max_tokens=256,
                 temperature=0.3, top_p=1.0):
        self.calls.append({
            'prompt': prompt,
            'system_instruction': system_instruction,
            'max_tokens': max_tokens,
            'temperature': temperature,
            'top_p': top_p
        })
        if self.should_fail:
            raise RuntimeError("CUDA out of memory")
        return self.response


def history():
    return [
        Interaction(role='student', content='Hi Alex, what brings you in?', timestamp=1),
        Interaction(role='patient', content='Work, mostly.', timestamp=2),
    ]


# ========== Patient replies ==========

def test_patient_reply_success():
    client = MockHFClient(response="  Honestly? I can't breathe before meetings.  ")
    collaborator = LLMCollaborator(client)

    reply = collaborator.generate_patient_reply(PERSONA, history(), "How are you feeling?")

    assert reply.text == "Honestly? I can't breathe before meetings."
    assert reply.failed is False
    assert reply.error is None

    call = client.calls[0]
    assert PERSONA in call['system_instruction']
    assert "Stay strictly in character" in call['system_instruction']
    assert call['temperature'] == 0.8
    assert call['top_p'] == 0.9
    assert call['prompt'].endswith("Student: How are you feeling?\nYou:")
    assert "Student: Hi Alex, what brings you in?\nYou: Work, mostly." in call['prompt']


def test_patient_reply_failure_returns_fallback():
    collaborator = LLMCollaborator(MockHFClient(should_fail=True))

    reply = collaborator.generate_patient_reply(PERSONA, [], "Hello")

    assert reply.text == PATIENT_ERROR_FALLBACK
    assert reply.failed is True
    assert "CollaboratorFailure" in reply.error
    assert "CUDA out of memory" in reply.error


def test_patient_reply_empty_returns_fallback():
    collaborator = LLMCollaborator(MockHFClient(response="   "))

    reply = collaborator.generate_patient_reply(PERSONA, [], "Hello")

    assert reply.text == PATIENT_EMPTY_FALLBACK
    assert reply.failed is False


def test_patient_reply_non_text_output_is_failure():
    collaborator = LLMCollaborator(MockHFClient(response={'text': 'hi'}))

    reply = collaborator.generate_patient_reply(PERSONA, [], "Hello")

    assert reply.failed is True
    assert reply.text == PATIENT_ERROR_FALLBACK


def test_patient_reply_empty_persona_is_failure():
    client = MockHFClient()
    reply = LLMCollaborator(client).generate_patient_reply("", [], "Hello")

    assert reply.failed is True
    assert "PromptBuildError" in reply.error
    assert client.calls == []


def test_patient_reply_strips_echoed_labels():
    client = MockHFClient(response="You: I don't know.\nStudent: Can you say more?\nYou: No.")
    reply = LLMCollaborator(client).generate_patient_reply(PERSONA, [], "Why?")

    assert reply.text == "I don't know."


# ========== Supervisor briefings ==========

def test_briefing_success():
    client = MockHFClient(response="Strong alliance; limited use of reflections.")
    reply = LLMCollaborator(client).generate_supervisor_briefing(history())

    assert reply.text == "Strong alliance; limited use of reflections."
    assert not reply.failed
    prompt = client.calls[0]['prompt']
    assert "clinical supervisor" in prompt
    assert "student: Hi Alex, what brings you in?" in prompt
    assert "patient: Work, mostly." in prompt


def test_briefing_failure_and_empty():
    failed = LLMCollaborator(MockHFClient(should_fail=True)).generate_supervisor_briefing(history())
    assert failed.text == BRIEFING_ERROR_FALLBACK
    assert failed.failed

    empty = LLMCollaborator(MockHFClient(response="")).generate_supervisor_briefing(history())
    assert empty.text == BRIEFING_EMPTY_FALLBACK
    assert not empty.failed


def test_briefing_empty_transcript_is_failure():
    reply = LLMCollaborator(MockHFClient()).generate_supervisor_briefing([])
    assert reply.failed
    assert reply.text == BRIEFING_ERROR_FALLBACK


# ========== Construction ==========

def test_client_interface_validated():
    with pytest.raises(TypeError):
        LLMCollaborator(object())

    with pytest.raises(RuntimeError):
        LLMCollaborator(MockHFClient(loaded=False))


def test_base_collaborator_never_raises():
    """Unimplemented subclasses still honour the never-raise contract"""
    reply = PatientCollaborator().generate_patient_reply(PERSONA, [], "Hello")
    assert reply.failed
    assert "NotImplementedError" in reply.error


class NumberCollaborator(PatientCollaborator):
    """Subclass returning a non-text value"""

    def _generate_patient_text(self, persona, history, new_message):
        return 42

    def _generate_briefing_text(self, transcript):
        return ['not', 'text']


def test_non_text_from_subclass_is_failure():
    collaborator = NumberCollaborator()

    reply = collaborator.generate_patient_reply(PERSONA, [], "Hello")
    assert reply.failed
    assert reply.text == PATIENT_ERROR_FALLBACK
    assert "expected text, got int" in reply.error

    briefing = collaborator.generate_supervisor_briefing(history())
    assert briefing.failed
    assert briefing.text == BRIEFING_ERROR_FALLBACK


# ========== Prompt building / formatting ==========

def test_patient_prompt_without_history():
    prompt = prompt_builder.build_patient_prompt([], "  Hello  ")
    assert prompt == "Student: Hello\nYou:"


def test_formatter_manual_mistral_folds_system_instruction():
    formatter = PromptFormatter("mistralai/Mistral-7B-Instruct-v0.2")
    formatted = formatter.format_chat("Hello", system_instruction="Be brief.")
    assert formatted == "[INST] Be brief.\n\nHello [/INST]"


class TemplateTokenizer:
    """Tokenizer whose chat template rejects system messages"""
    chat_template = "{{ messages }}"

    def apply_chat_template(self, messages, tokenize=False, add_generation_prompt=True):
        if any(m['role'] == 'system' for m in messages):
            raise ValueError("Conversation roles must alternate user/assistant")
        return f"<chat>{messages[0]['content']}</chat>"


def test_formatter_template_fallback_without_system_role():
    formatter = PromptFormatter("some-org/custom-model", tokenizer=TemplateTokenizer())
    formatted = formatter.format_chat("Hello", system_instruction="Be brief.")

    assert formatted == "<chat>Be brief.\n\nHello</chat>"
    assert formatter.get_info()['formatting_method'] == "tokenizer_template"


def test_formatter_generic_passthrough():
    formatter = PromptFormatter("some-org/custom-model")
    assert formatter.format_chat("Hello") == "Hello"
    assert formatter.get_info()['model_family'] == "generic"
