"""ptask: productivity tracker (tasks persisted to a local JSON document)."""

__version__ = "1.0.0"
