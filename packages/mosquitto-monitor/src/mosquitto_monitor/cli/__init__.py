"""Command-line interface for the Mosquitto monitor."""
