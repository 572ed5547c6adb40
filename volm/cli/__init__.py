"""volm command-line interface.

Exposes:
    cli -- Click group entry point (registered as ``volm`` script).
"""

from volm.cli.main import cli

__all__ = ["cli"]
