"""Local cache and optimistic like state for the blog front end."""

__version__ = "0.1.0"
