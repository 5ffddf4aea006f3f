"""
HuggingFace Client - Model loading and inference wrapper

Responsibilities:
- Load a causal LM, optionally with 4-bit quantization on CUDA
- Generate text completions for a system instruction + prompt
- Handle CUDA errors
- Optional diagnostics (token counts, latency)

Design principles:
- Dependency injection (no singleton)
- Fail fast on critical errors (CUDA OOM, missing CUDA)
- Errors propagate to the caller; the collaborator owns fallbacks
- Model-agnostic (formatting lives in PromptFormatter)
"""

import logging
import time
from typing import Any, Dict, Optional, Union

import torch
from transformers import (
    AutoModelForCausalLM,
    AutoTokenizer,
    BitsAndBytesConfig
)

from psychebridge.utils.prompt_formatter import PromptFormatter

logger = logging.getLogger(__name__)

DEVICE_CUDA = "cuda"
DEVICE_CPU = "cpu"
DEVICE_MAP_AUTO = "auto"


class HuggingFaceClient:
    """Wrapper for HuggingFace model inference"""

    def __init__(
        self,
        model_name: str,
        load_in_4bit: bool = True,
        device: str = DEVICE_CUDA
    ) -> None:
        """
        Initialize model and tokenizer

        Args:
            model_name: HuggingFace model identifier
            load_in_4bit: Use 4-bit quantization (CUDA only, saves VRAM)
            device: Device to use ("cuda" or "cpu")

        Raises:
            RuntimeError: If CUDA requested but not available
            Exception: If model loading fails
        """
        self.model_name = model_name
        self.device = device
        self.model = None
        self.tokenizer = None

        if device == DEVICE_CUDA and not torch.cuda.is_available():
            raise RuntimeError("CUDA requested but not available. Check nvidia-smi.")

        logger.info(f"Loading model: {model_name} (device={device}, 4-bit={load_in_4bit})")

        quantization_config = None
        if load_in_4bit and device == DEVICE_CUDA:
            quantization_config = BitsAndBytesConfig(
                load_in_4bit=True,
                bnb_4bit_quant_type="nf4",
                bnb_4bit_compute_dtype=torch.bfloat16,
                bnb_4bit_use_double_quant=True
            )
            logger.info("Using NF4 quantization with bfloat16 compute")

        try:
            self.tokenizer = AutoTokenizer.from_pretrained(model_name)

            if self.tokenizer.pad_token is None:
                if self.tokenizer.eos_token is not None:
                    self.tokenizer.pad_token = self.tokenizer.eos_token
                    logger.info("Set pad_token to eos_token")
                else:
                    self.tokenizer.add_special_tokens({'pad_token': '[PAD]'})
                    logger.warning("Added new [PAD] token as pad_token")

        except Exception as e:
            logger.error(f"Failed to load tokenizer: {e}")
            raise

        self.formatter = PromptFormatter(model_name, self.tokenizer)
        logger.info(f"Prompt formatter initialized: {self.formatter.get_info()}")

        try:
            self.model = AutoModelForCausalLM.from_pretrained(
                model_name,
                quantization_config=quantization_config,
                device_map=DEVICE_MAP_AUTO if device == DEVICE_CUDA else None,
                torch_dtype=torch.bfloat16 if device == DEVICE_CUDA else torch.float32
            )
            if device == DEVICE_CUDA:
                self._log_cuda_memory("after model load")

        except torch.cuda.OutOfMemoryError:
            logger.error("CUDA Out of Memory during model loading")
            logger.error("Try: 1) Close other GPU applications, 2) Reduce model size, 3) Use CPU")
            raise
        except Exception as e:
            logger.error(f"Failed to load model: {e}")
            raise

        self.model.eval()
        logger.info("HuggingFace client initialized successfully")

    def _log_cuda_memory(self, stage: str) -> None:
        """
        Log CUDA memory usage

        Args:
            stage: Description of when this is called (e.g., "after model load")
        """
        if self.device == DEVICE_CUDA and torch.cuda.is_available():
            allocated = torch.cuda.memory_allocated() / 1e9
            reserved = torch.cuda.memory_reserved() / 1e9
            logger.info(f"GPU memory {stage}: {allocated:.2f}GB allocated, {reserved:.2f}GB reserved")

    def is_loaded(self) -> bool:
        """
        Check if model is loaded and ready

        Returns:
            bool: True if model and tokenizer are loaded
        """
        return self.model is not None and self.tokenizer is not None

    def generate(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        max_tokens: int = 256,
        temperature: float = 0.3,
        top_p: float = 1.0,
        return_diagnostics: bool = False
    ) -> Union[str, Dict[str, Any]]:
        """
        Generate text completion

        Args:
            prompt: User-turn text
            system_instruction: Persona/guidelines (formatted as system turn
                where the model supports it)
            max_tokens: Maximum tokens to generate
            temperature: Sampling temperature (0.0 = deterministic)
            top_p: Nucleus sampling threshold
            return_diagnostics: Include token counts and timing

        Returns:
            str: Generated text (if return_diagnostics=False)
            dict: {'text': str, 'diagnostics': {...}} (if return_diagnostics=True)

        Raises:
            RuntimeError: If model not loaded
            torch.cuda.OutOfMemoryError: If GPU runs out of memory
        """
        if not self.is_loaded():
            raise RuntimeError("Model not loaded")

        start_time = time.time()

        formatted = self.formatter.format_chat(prompt, system_instruction=system_instruction)

        inputs = self.tokenizer(formatted, return_tensors="pt")
        if self.device == DEVICE_CUDA:
            inputs = inputs.to(DEVICE_CUDA)

        prompt_tokens = inputs.input_ids.shape[1]

        if temperature > 0:
            sampling = {'do_sample': True, 'temperature': temperature, 'top_p': top_p}
        else:
            sampling = {'do_sample': False}

        try:
            with torch.no_grad():
                outputs = self.model.generate(
                    inputs.input_ids,
                    attention_mask=inputs.attention_mask,
                    max_new_tokens=max_tokens,
                    pad_token_id=self.tokenizer.pad_token_id,
                    **sampling
                )
        except torch.cuda.OutOfMemoryError:
            logger.error("CUDA OOM during generation")
            logger.error(f"Prompt tokens: {prompt_tokens}, Max new: {max_tokens}")
            raise

        # Skip prompt tokens
        generated_ids = outputs[0][prompt_tokens:]
        generated_text = self.tokenizer.decode(generated_ids, skip_special_tokens=True)

        elapsed_ms = (time.time() - start_time) * 1000
        logger.debug(f"Generated {len(generated_ids)} tokens in {elapsed_ms:.0f}ms")

        if return_diagnostics:
            completion_tokens = len([
                t for t in generated_ids
                if t != self.tokenizer.pad_token_id
            ])
            return {
                "text": generated_text,
                "diagnostics": {
                    "prompt_tokens": prompt_tokens,
                    "completion_tokens": completion_tokens,
                    "total_tokens": prompt_tokens + completion_tokens,
                    "latency_ms": elapsed_ms
                }
            }

        return generated_text

    def get_model_info(self) -> Dict[str, Any]:
        """
        Get information about loaded model

        Returns:
            dict: Model metadata
        """
        info = {
            "model_name": self.model_name,
            "device": self.device,
            "is_loaded": self.is_loaded(),
            "formatter": self.formatter.get_info()
        }

        if self.device == DEVICE_CUDA and torch.cuda.is_available():
            info["gpu_memory_allocated_gb"] = torch.cuda.memory_allocated() / 1e9
            info["gpu_memory_reserved_gb"] = torch.cuda.memory_reserved() / 1e9

        return info
