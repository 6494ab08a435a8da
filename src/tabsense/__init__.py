"""On-device page summaries, translation and chat with a managed model session."""

__version__ = "0.1.0"
