"""clawup command line interface."""
