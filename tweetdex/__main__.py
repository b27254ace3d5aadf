"""
Entry point for running tweetdex as a module.

Usage:
    python -m tweetdex quote buy 100
    python -m tweetdex simulate --steps 200
"""

from .cli import main

if __name__ == "__main__":
    main()
