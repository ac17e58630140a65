"""AddonForge: dependency validation and failure analysis for addon deployments."""

__version__ = "0.1.0"
