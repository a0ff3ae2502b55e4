"""wagate command line interface."""
