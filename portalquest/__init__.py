"""PortalQuest — trivia and exploration companion for the show."""

__version__ = "0.1.0"
