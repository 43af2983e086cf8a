"""ModuleGate - quiz-gated progression engine for multi-page training modules."""

__version__ = "0.1.0"
