"""Entry point for running weeklybot as a module: python -m weeklybot."""

from weeklybot.cli.commands import app

if __name__ == "__main__":
    app()
