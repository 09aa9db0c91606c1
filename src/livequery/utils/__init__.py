from .polling import poll

__all__ = ["poll"]
