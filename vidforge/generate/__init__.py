"""Episode script generation."""

from vidforge.generate.handler import GenerateHandler, build_script_prompt

__all__ = ["GenerateHandler", "build_script_prompt"]
