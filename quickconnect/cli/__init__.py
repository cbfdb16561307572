"""CLI module for quickconnect."""
