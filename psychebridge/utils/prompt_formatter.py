"""
Prompt Formatter - Model-specific chat formatting

Responsibilities:
- Detect model family from model name
- Render a system instruction + user prompt for the model
- Use tokenizer chat template if available
- Fallback to manual formatting for known families

Design principles:
- Tokenizer template priority (most robust)
- Templates that reject a system role get it folded into the user turn
- Generic passthrough for unknown models
- Stateless formatting (no side effects)
"""

import logging
from typing import Optional

logger = logging.getLogger(__name__)


def merge_system_instruction(system_instruction: Optional[str], prompt: str) -> str:
    """Fold a system instruction into the user prompt"""
    if not system_instruction:
        return prompt
    return f"{system_instruction.strip()}\n\n{prompt.strip()}"


class PromptFormatter:
    """Format chat prompts for specific model families"""

    # Known model families and their manual single-turn formatting
    MANUAL_FORMATS = {
        "mistral": lambda prompt: f"[INST] {prompt} [/INST]",
        "mixtral": lambda prompt: f"[INST] {prompt} [/INST]",
        "llama-2": lambda prompt: f"[INST] {prompt} [/INST]",
        "llama-3": lambda prompt: f"<|begin_of_text|><|start_header_id|>user<|end_header_id|>\n\n{prompt}<|eot_id|><|start_header_id|>assistant<|end_header_id|>\n\n",
        "zephyr": lambda prompt: f"<|user|>\n{prompt}\n<|assistant|>\n",
        "phi": lambda prompt: f"<|user|>\n{prompt}<|end|>\n<|assistant|>\n",
    }

    def __init__(self, model_name: str, tokenizer=None):
        """
        Initialize formatter

        Args:
            model_name: HuggingFace model identifier
            tokenizer: Optional tokenizer with chat_template attribute
        """
        self.model_name = model_name
        self.tokenizer = tokenizer
        self.model_family = self._detect_model_family(model_name)

        self.has_chat_template = (
            tokenizer is not None and
            getattr(tokenizer, 'chat_template', None) is not None
        )

        if self.has_chat_template:
            logger.info(f"Using tokenizer chat template for {model_name}")
        elif self.model_family in self.MANUAL_FORMATS:
            logger.info(f"Using manual formatting for {self.model_family} family")
        else:
            logger.warning(
                f"No chat template or known format for {model_name}. "
                f"Using generic (no formatting)"
            )

    def _detect_model_family(self, model_name: str) -> str:
        """
        Detect model family from model name

        Args:
            model_name: Full model identifier

        Returns:
            str: Model family identifier
        """
        name_lower = model_name.lower()

        # Most specific first
        if "llama-3" in name_lower or "llama3" in name_lower:
            return "llama-3"
        elif "llama" in name_lower:
            return "llama-2"
        elif "mixtral" in name_lower:
            return "mixtral"
        elif "mistral" in name_lower:
            return "mistral"
        elif "zephyr" in name_lower:
            return "zephyr"
        elif "phi" in name_lower:
            return "phi"
        else:
            return "generic"

    def _apply_template(self, messages: list) -> str:
        return self.tokenizer.apply_chat_template(
            messages,
            tokenize=False,
            add_generation_prompt=True
        )

    def format_chat(self, prompt: str, system_instruction: Optional[str] = None) -> str:
        """
        Format a single-turn chat with optional system instruction

        Priority:
        1. Tokenizer chat template with a system message
        2. Tokenizer chat template with the instruction folded into the user turn
        3. Manual formatting for known family (instruction folded in)
        4. Generic passthrough

        Args:
            prompt: User-turn text
            system_instruction: Persona/guideline text, if any

        Returns:
            str: Formatted prompt ready for the model

        Examples:
            >>> formatter = PromptFormatter("mistralai/Mistral-7B-Instruct-v0.2")
            >>> formatter.format_chat("Hello", system_instruction="Be brief.")
            '[INST] Be brief.\\n\\nHello [/INST]'
        """
        merged = merge_system_instruction(system_instruction, prompt)

        if self.has_chat_template:
            if system_instruction:
                try:
                    return self._apply_template([
                        {"role": "system", "content": system_instruction.strip()},
                        {"role": "user", "content": prompt.strip()}
                    ])
                except Exception as e:
                    # Mistral-style templates only accept alternating user/assistant
                    logger.debug(f"System role rejected by chat template: {e}")

            try:
                return self._apply_template([{"role": "user", "content": merged}])
            except Exception as e:
                logger.warning(
                    f"Tokenizer chat template failed: {e}. "
                    f"Falling back to manual formatting"
                )

        if self.model_family in self.MANUAL_FORMATS:
            logger.debug(f"Applied manual {self.model_family} formatting")
            return self.MANUAL_FORMATS[self.model_family](merged)

        logger.debug("No formatting applied (generic model)")
        return merged

    def get_info(self) -> dict:
        """
        Get formatter information

        Returns:
            dict: Formatter metadata
        """
        return {
            "model_name": self.model_name,
            "model_family": self.model_family,
            "has_chat_template": self.has_chat_template,
            "formatting_method": (
                "tokenizer_template" if self.has_chat_template
                else "manual" if self.model_family in self.MANUAL_FORMATS
                else "none"
            )
        }
