"""Appwrite Agent - a chat agent that manages an Appwrite backend through tool calls."""

__version__ = "0.1.0"

from appwrite_agent.config import Config
from appwrite_agent.controller import AgentController
from appwrite_agent.cli import main

__all__ = ["AgentController", "Config", "main", "__version__"]
