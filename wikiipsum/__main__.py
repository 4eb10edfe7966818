"""Main entry point when executing wikiipsum as a package.

This allows running the package using python -m wikiipsum.
"""

from wikiipsum.main import cli_entry_point

if __name__ == "__main__":
    cli_entry_point()
