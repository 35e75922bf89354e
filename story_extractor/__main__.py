"""
Entry point for running the package as a module.

Usage:
    python -m story_extractor extract scrape.json -o story.json
"""

import sys
from .cli import main

if __name__ == "__main__":
    sys.exit(main())
