"""Local development entry point.

Usage:
    python run.py

Serves the checkout, the PayArc webhook endpoint and the CLI commands
against the database in DATABASE_URL. Settings are read from .env.
"""

from dotenv import load_dotenv

load_dotenv()  # before the config module reads os.environ

from payarc_mid import create_app

app = create_app()

if __name__ == "__main__":
    app.run(debug=app.config.get("DEBUG", False), host="0.0.0.0", port=5001)
