from .provider import ChatModelGenerator, GenerateOptions, TextGenerator

__all__ = ["ChatModelGenerator", "GenerateOptions", "TextGenerator"]
