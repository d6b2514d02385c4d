"""MCAT-style timed practice exams with trial and paid-subscription access."""

__version__ = "1.0.0"
