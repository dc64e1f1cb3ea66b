# UI module
from .embeds import EmbedBuilder

__all__ = ["EmbedBuilder"]
