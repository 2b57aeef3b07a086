"""Health check endpoint."""

from http.server import BaseHTTPRequestHandler
import json
import os

from src.utils.logging_config import SERVICE_NAME


def health_payload() -> dict:
    """Service status plus which integrations are configured."""
    return {
        "status": "ok",
        "service": SERVICE_NAME,
        "integrations": {
            "supabase": bool(os.environ.get("SUPABASE_URL") and os.environ.get("SUPABASE_SERVICE_ROLE_KEY")),
            "llm": bool(os.environ.get("ANTHROPIC_API_KEY") or os.environ.get("OPENAI_API_KEY")),
            "email": bool(os.environ.get("RESEND_API_KEY")),
        },
    }


class handler(BaseHTTPRequestHandler):
    """Health check handler for Vercel serverless function."""

    def do_GET(self):
        """Handle GET request."""
        self.send_response(200)
        self.send_header('Content-Type', 'application/json')
        self.end_headers()
        response = json.dumps(health_payload())
        self.wfile.write(response.encode('utf-8'))

    def do_POST(self):
        """Handle POST request (same as GET for health check)."""
        self.do_GET()
