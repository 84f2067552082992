"""Study series: session lifecycle, recipe filtering and table placement grading."""

__version__ = "0.1.0"
