"""cfagentbrowser: drive a headless browser from a line-oriented stdin protocol."""
