"""Local development entry point.

Usage:
    python run.py

Without STRIPE_WEBHOOK_SECRET in .env, webhook bodies are accepted
unsigned, so events can be POSTed by hand to /stripe/webhooks.
Otherwise forward real events with:
    stripe listen --forward-to localhost:5001/stripe/webhooks
"""

from dotenv import load_dotenv

load_dotenv()  # Load .env before anything else

from app import create_app

app = create_app()

if __name__ == "__main__":
    app.run(debug=True, host="0.0.0.0", port=5001)
