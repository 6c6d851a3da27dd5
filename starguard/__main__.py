from dotenv import load_dotenv

from starguard.cli.commands import app

# Precedence: existing env vars > .env file (override=False)
load_dotenv(override=False)

if __name__ == "__main__":
    app()
