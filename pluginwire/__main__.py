"""
Entry point for running pluginwire as a module: python -m pluginwire
"""

from pluginwire.cli.commands import app

if __name__ == "__main__":
    app()
