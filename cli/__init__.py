"""Command line client for the power load analysis service."""
