"""filefusion: concatenate project files into one LLM-friendly document."""

__version__ = "0.1.0"
