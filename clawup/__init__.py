"""clawup - config synthesis and bootstrap script generation for OpenClaw agents."""

__version__ = "0.4.0"
