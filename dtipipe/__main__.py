"""
Module entry-point that makes the package runnable with

    python -m dtipipe

The behaviour is identical to the *dtipipe-cli* console script because the
Click **group** object imported below performs all CLI dispatching.
"""

from dtipipe.cli import main

if __name__ == "__main__":  # pragma: no cover
    main()
