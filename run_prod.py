#!/usr/bin/env python3
"""
Production runner for Meetspot
- Mounts the Flask API (meetspot.app) at "/"
- Loads .env for GOOGLE_MAPS_API_KEY and other settings

Usage:
  python3 run_prod.py

Environment:
  PORT=8000 (default)        # Port to bind
  HOST=0.0.0.0 (default)     # Host interface
  GOOGLE_MAPS_API_KEY=...    # Required for geocoding and venue search
  GROQ_API_KEY=...           # optional: preference parsing and scoring
  SSL_CERTFILE / SSL_KEYFILE # optional: serve HTTPS directly
"""

import os
import ssl
from pathlib import Path

from dotenv import load_dotenv
from werkzeug.middleware.proxy_fix import ProxyFix
from werkzeug.serving import run_simple
from waitress import serve

PROJECT_ROOT = Path(__file__).resolve().parent

# Load env from .env if present
load_dotenv(dotenv_path=PROJECT_ROOT / '.env')

from meetspot.app import app as api_app  # noqa: E402
from meetspot.config import maps_api_key  # noqa: E402

application = api_app.wsgi_app

# Respect reverse proxy headers (X-Forwarded-*) when behind a proxy/HTTPS terminator
if os.getenv('TRUST_PROXY_HEADERS', '1') not in ('0', 'false', 'False', 'no', 'off'):
    # Trust a single proxy hop by default; tune via env
    x_for = int(os.getenv('PROXY_FIX_X_FOR', '1'))
    x_proto = int(os.getenv('PROXY_FIX_X_PROTO', '1'))
    x_host = int(os.getenv('PROXY_FIX_X_HOST', '1'))
    x_port = int(os.getenv('PROXY_FIX_X_PORT', '1'))
    x_prefix = int(os.getenv('PROXY_FIX_X_PREFIX', '1'))
    application = ProxyFix(application, x_for=x_for, x_proto=x_proto, x_host=x_host, x_port=x_port, x_prefix=x_prefix)

api_app.wsgi_app = application


def main():
    host = os.getenv('HOST', '0.0.0.0')
    try:
        port = int(os.getenv('PORT', '8000'))
    except ValueError:
        port = 8000

    if not maps_api_key():
        print("\n" + "="*60)
        print("Warning: GOOGLE_MAPS_API_KEY is not configured.")
        print("Plans can be read, but geocoding and venue search are disabled.")
        print("Set it in your environment or .env file.")
        print("="*60 + "\n")

    ssl_cert = os.getenv('SSL_CERTFILE') or os.getenv('SSL_CERT')
    ssl_key = os.getenv('SSL_KEYFILE') or os.getenv('SSL_KEY')
    ssl_ca = os.getenv('SSL_CA_FILE') or os.getenv('SSL_CA')

    if ssl_cert and ssl_key:
        print(f"\n🔐 Starting Meetspot (prod) on https://{host}:{port}")
        print(" - TLS: using provided SSL cert and key")

        # Build SSL context
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        if ssl_ca:
            context.load_verify_locations(ssl_ca)
        context.load_cert_chain(certfile=ssl_cert, keyfile=ssl_key)

        # Use Werkzeug's run_simple to serve HTTPS directly
        run_simple(hostname=host, port=port, application=api_app, ssl_context=context, threaded=True)
    else:
        print(f"\n🚀 Starting Meetspot (prod) on http://{host}:{port}")
        print("Using waitress WSGI server")
        serve(api_app, host=host, port=port, threads=int(os.getenv('WSGI_THREADS', '8')))


if __name__ == '__main__':
    main()
